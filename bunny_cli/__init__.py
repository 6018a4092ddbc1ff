"""
Bunny CLI

Command-line tooling for importing and migrating billing data into a Bunny
instance.

Supports:
- CSV imports for accounts, contacts, subscriptions and MRR history
- JSON product catalog imports
- Product migration between two Bunny instances
- Product catalog and subscription migration from Stripe
- AI-assisted branding bootstrap for an entity
"""

__version__ = "0.1.0"
