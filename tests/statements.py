"""Sample OCR texts shared by the parser, analyzer and pipeline tests."""

HEALTHY = """JPMorgan Chase Bank, N.A.
Business Checking Account
Account Number: 123456789
Statement Period: 01/01/2024 - 01/31/2024
Beginning Balance $10,000.00
01/02 Customer Deposit 2,000.00 12,000.00
01/05 Rent Payment 1,200.00 10,800.00
01/08 Customer Deposit 2,000.00 12,800.00
01/11 Supplier Payment 1,200.00 11,600.00
01/14 Customer Deposit 2,000.00 13,600.00
01/17 Payroll 1,200.00 12,400.00
01/20 Customer Deposit 2,000.00 14,400.00
01/23 Utilities 1,200.00 13,200.00
01/26 Customer Deposit 2,000.00 15,200.00
01/29 Insurance Premium 1,200.00 14,000.00
Ending Balance $14,000.00
"""

# Same amounts and dates as HEALTHY; two debits are NSF items.
TWO_NSF = HEALTHY.replace("01/23 Utilities", "01/23 NSF Returned Item").replace(
    "01/29 Insurance Premium", "01/29 NSF Fee Insufficient Funds"
)

# Stated ending balance disagrees with opening + net activity.
MISMATCHED_CLOSING = HEALTHY.replace("Ending Balance $14,000.00", "Ending Balance $20,000.00")

DEBIT_CREDIT = """TD Canada Trust
Date Description Debit Credit Balance
Opening Balance 5,000.00
03/01 Deposit - 1,500.00 6,500.00
03/03 Cheque 1021 700.00 - 5,800.00
03/09 Card Purchase 45.20 - 5,754.80
03/15 E-Transfer Received - 2,245.20 8,000.00
Closing Balance 8,000.00
"""

AMOUNT_ONLY = """Statement period: January 1, 2024 to January 31, 2024
Beginning balance 1,000.00
Jan 3 Deposit from client 500.00
Jan 9 ATM withdrawal 200.00
Jan 15 Service fee 15.00
Jan 20 Wire received 800.00
"""

OVERDRAWN = """Beginning Balance 500.00
02/01 Vendor payment 800.00 -300.00
02/03 Customer deposit 1,000.00 700.00
"""

YEAR_END = """Statement Period: 12/15/2023 - 01/14/2024
Beginning Balance 2,000.00
12/20 Deposit 500.00 2,500.00
12/28 Payment 300.00 2,200.00
01/05 Deposit 400.00 2,600.00
"""

UNPARSEABLE = """01/02 Called branch about card
01/03 Mailed signature card
01/04 Wire 12.00
"""

# Day-first dates: six of the ten rows have a day above 12 and cannot be read as MM/DD.
DAY_FIRST = """Beginning Balance 1,400.00
03/01 Deposit 100.00 1,500.00
05/01 Deposit 100.00 1,600.00
08/01 Deposit 100.00 1,700.00
10/01 Deposit 100.00 1,800.00
15/01 Deposit 100.00 1,900.00
18/01 Deposit 100.00 2,000.00
20/01 Deposit 100.00 2,100.00
22/01 Deposit 100.00 2,200.00
25/01 Deposit 100.00 2,300.00
28/01 Deposit 100.00 2,400.00
Ending Balance 2,400.00
"""
