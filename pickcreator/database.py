from contextlib import asynccontextmanager
from typing import Optional

import asyncpg

_pool: Optional[asyncpg.Pool] = None


async def init_pool(database_url: str):
    """Initialize the connection pool."""
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(database_url, min_size=2, max_size=10)
    return _pool


async def get_pool() -> asyncpg.Pool:
    """Get the existing connection pool."""
    global _pool
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool first.")
    return _pool


async def close_pool():
    """Close the connection pool."""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None


@asynccontextmanager
async def get_connection():
    """Get a database connection from the pool."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        yield conn


async def init_db():
    """Create tables if they don't exist."""
    async with get_connection() as conn:
        # Users table (brands, influencers, admins)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                email VARCHAR(255) NOT NULL UNIQUE,
                name VARCHAR(255) NOT NULL DEFAULT '',
                role VARCHAR(20) NOT NULL CHECK (role IN ('admin', 'brand', 'influencer')),
                profile_picture_url TEXT,
                company_name VARCHAR(255),
                location VARCHAR(255),
                earnings NUMERIC(12, 2) NOT NULL DEFAULT 0,
                is_active BOOLEAN DEFAULT true,
                created_at TIMESTAMP DEFAULT NOW(),
                updated_at TIMESTAMP DEFAULT NOW()
            )
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_users_role ON users(role)
        """)
        await conn.execute("""
            ALTER TABLE users ADD COLUMN IF NOT EXISTS earnings NUMERIC(12, 2) NOT NULL DEFAULT 0
        """)

        # Deals table. Nested participant and submission records live in JSONB.
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS deals (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                brand_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                brand_name VARCHAR(255) NOT NULL,
                brand_profile_pic TEXT NOT NULL DEFAULT '',
                company_name VARCHAR(255) NOT NULL DEFAULT '',
                location VARCHAR(255) NOT NULL DEFAULT '',
                deal_name VARCHAR(255) NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                influencers JSONB NOT NULL DEFAULT '[]',
                content_requirements JSONB NOT NULL DEFAULT '{}',
                pricing_mode VARCHAR(20) NOT NULL
                    CHECK (pricing_mode IN ('negotiation', 'package', 'barter', 'fixed')),
                fixed_pricing JSONB,
                use_package_deals BOOLEAN NOT NULL DEFAULT false,
                selected_package JSONB,
                visit_required BOOLEAN NOT NULL DEFAULT false,
                is_negotiating BOOLEAN NOT NULL DEFAULT false,
                offer_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
                is_product_exchange BOOLEAN NOT NULL DEFAULT false,
                product_name VARCHAR(255) NOT NULL DEFAULT '',
                product_price NUMERIC(12, 2) NOT NULL DEFAULT 0,
                total_amount NUMERIC(12, 2) NOT NULL,
                status VARCHAR(20) NOT NULL DEFAULT 'requested'
                    CHECK (status IN ('requested', 'counter-offered', 'accepted', 'ongoing',
                                      'content_approved', 'completed', 'cancelled')),
                payment_status VARCHAR(10) NOT NULL DEFAULT 'unpaid'
                    CHECK (payment_status IN ('unpaid', 'paid')),
                submitted_content JSONB NOT NULL DEFAULT '[]',
                content_published BOOLEAN NOT NULL DEFAULT false,
                payment_released BOOLEAN NOT NULL DEFAULT false,
                version INTEGER NOT NULL DEFAULT 1,
                created_at TIMESTAMP DEFAULT NOW(),
                updated_at TIMESTAMP DEFAULT NOW()
            )
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_deals_brand_id ON deals(brand_id)
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_deals_status ON deals(status)
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_deals_influencers ON deals USING GIN (influencers jsonb_path_ops)
        """)

        # Brand payments against accepted deals
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS deal_payments (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                deal_id UUID NOT NULL REFERENCES deals(id) ON DELETE CASCADE,
                brand_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                amount NUMERIC(12, 2) NOT NULL CHECK (amount > 0),
                currency VARCHAR(3) NOT NULL DEFAULT 'INR',
                payment_method VARCHAR(50),
                transaction_reference VARCHAR(255),
                created_at TIMESTAMP DEFAULT NOW()
            )
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_deal_payments_deal_id ON deal_payments(deal_id)
        """)
