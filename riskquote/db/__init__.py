"""
RiskQuote persistence: async SQLAlchemy engine, ORM models, record stores.
"""
