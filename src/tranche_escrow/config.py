"""Tranche escrow configuration constants.

Amounts are integer token base units; times are integer unix seconds.
"""

# Tranche split
FIRST_PAYMENT_PERCENT = 70
PERCENT_BASE = 100

# Deadline
SECONDS_PER_DAY = 86_400
ORDER_WINDOW_DAYS = 7
ORDER_WINDOW_SECONDS = ORDER_WINDOW_DAYS * SECONDS_PER_DAY

# Addresses
ADDRESS_SIZE = 20
ZERO_ADDRESS = bytes(ADDRESS_SIZE)

# Ledger range
U256_MAX = (1 << 256) - 1

# First order id handed out by a fresh registry
FIRST_ORDER_ID = 1
