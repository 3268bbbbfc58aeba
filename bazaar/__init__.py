"""
bazaar - Transactional Marketplace Ledger

User balances, item listings and atomic buy/sell settlement for a
single-currency marketplace, with pluggable persistence.

Usage:
    from bazaar import open_marketplace, JsonFileGateway

    market = open_marketplace(JsonFileGateway("market.json"))
    ledger, catalog = market.ledger, market.catalog

    buyer = ledger.authenticate("jane@example.com", "password123")
    camera = catalog.search("camera")[0]
    tx = ledger.purchase(camera.id, buyer.id)
"""

# Core types
from .core import (
    User,
    Item,
    Transaction,
    ItemStatus,
    MarketState,
    MarketView,
    MarketError,
    DuplicateEmail,
    InvalidRegistration,
    InvalidCredentials,
    InvalidAmount,
    InvalidPrice,
    InvalidListing,
    ItemNotFound,
    ItemAlreadySold,
    ImmutableField,
    BuyerNotFound,
    SellerNotFound,
    InsufficientFunds,
    UserNotFound,
    PersistenceFailure,
    STARTING_BALANCE,
    EDITABLE_ITEM_FIELDS,
    hash_secret,
    verify_secret,
    parse_cash,
    round_cash,
)

# Persistence
from .persistence import (
    PersistenceGateway,
    InMemoryGateway,
    JsonFileGateway,
    state_to_document,
    state_from_document,
)

# Repository
from .repository import Repository, Draft

# Session
from .session import SessionGate

# Ledger
from .ledger import Ledger

# Catalog
from .catalog import (
    Catalog,
    items_by_seller,
    available_items,
    available_items_except_seller,
    items_by_ids,
    search_items,
    user_transactions,
    purchased_items,
    sold_items,
)

# Bootstrap
from .bootstrap import (
    Marketplace,
    open_marketplace,
    seed_sample_data,
    SAMPLE_USERS,
    SAMPLE_ITEMS,
    SAMPLE_PASSWORD,
)

__all__ = [
    # Core
    'User', 'Item', 'Transaction', 'ItemStatus', 'MarketState', 'MarketView',
    'MarketError', 'DuplicateEmail', 'InvalidRegistration', 'InvalidCredentials',
    'InvalidAmount', 'InvalidPrice', 'InvalidListing', 'ItemNotFound', 'ItemAlreadySold',
    'ImmutableField', 'BuyerNotFound', 'SellerNotFound', 'InsufficientFunds',
    'UserNotFound', 'PersistenceFailure',
    'STARTING_BALANCE', 'EDITABLE_ITEM_FIELDS',
    'hash_secret', 'verify_secret', 'parse_cash', 'round_cash',
    # Persistence
    'PersistenceGateway', 'InMemoryGateway', 'JsonFileGateway',
    'state_to_document', 'state_from_document',
    # Repository
    'Repository', 'Draft',
    # Session
    'SessionGate',
    # Ledger
    'Ledger',
    # Catalog
    'Catalog', 'items_by_seller', 'available_items', 'available_items_except_seller',
    'items_by_ids', 'search_items', 'user_transactions', 'purchased_items', 'sold_items',
    # Bootstrap
    'Marketplace', 'open_marketplace', 'seed_sample_data',
    'SAMPLE_USERS', 'SAMPLE_ITEMS', 'SAMPLE_PASSWORD',
]

__version__ = '1.0.0'
