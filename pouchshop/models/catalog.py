"""
Catalog and CMS tables managed through the admin-data proxy
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Numeric, Boolean, JSON, ForeignKey
from sqlalchemy.sql import func
from pouchshop.database import Base

class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    brand = Column(String(100), nullable=False)
    flavor = Column(String(100), nullable=False, default="")
    strength = Column(String(50), nullable=False, default="")
    strength_mg = Column(Numeric(6, 2), nullable=False, default=0)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    description = Column(Text, nullable=True)
    description_it = Column(Text, nullable=True)
    image = Column(String(500), nullable=True)
    image_2 = Column(String(500), nullable=True)
    image_3 = Column(String(500), nullable=True)
    popularity = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Page(Base):
    __tablename__ = "pages"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(200), nullable=False, index=True)
    title = Column(String(300), nullable=False)
    language = Column(String(5), nullable=False, default="en")
    status = Column(String(20), nullable=False, default="draft")
    published_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class PageBlock(Base):
    __tablename__ = "page_blocks"

    id = Column(Integer, primary_key=True, index=True)
    page_id = Column(Integer, ForeignKey("pages.id", ondelete="CASCADE"), nullable=False, index=True)
    block_type = Column(String(50), nullable=False)
    content = Column(JSON, nullable=False, default=dict)
    position = Column(Integer, nullable=False, default=0)
    is_visible = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    url = Column(String(500), nullable=True)
    page_id = Column(Integer, ForeignKey("pages.id", ondelete="SET NULL"), nullable=True)
    parent_id = Column(Integer, ForeignKey("menu_items.id", ondelete="CASCADE"), nullable=True)
    menu_location = Column(String(50), nullable=False, default="header")
    position = Column(Integer, nullable=False, default=0)
    target = Column(String(20), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class PageMetadata(Base):
    __tablename__ = "page_metadata"

    id = Column(Integer, primary_key=True, index=True)
    page_path = Column(String(300), nullable=False, index=True)
    language = Column(String(5), nullable=False, default="en")
    title = Column(String(300), nullable=True)
    meta_description = Column(Text, nullable=True)
    keywords = Column(Text, nullable=True)
    canonical_url = Column(String(500), nullable=True)
    og_title = Column(String(300), nullable=True)
    og_description = Column(Text, nullable=True)
    og_image = Column(String(500), nullable=True)
    twitter_card = Column(String(50), nullable=True)
    twitter_title = Column(String(300), nullable=True)
    twitter_description = Column(Text, nullable=True)
    twitter_image = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
