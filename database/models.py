"""SQLAlchemy ORM 模型定义。

本模块定义了抽奖应用的所有数据库表：
- 商户（Merchant）：每个安装应用的店铺一条记录
- 抽奖资格（Entry）与计费记录（Transaction）：每个订单各一条，按订单号唯一
- 奖池（PrizePool）：每个季度一条，所有商户共享
"""
from typing import List, Optional
from decimal import Decimal
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime,
    DECIMAL, ForeignKey
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import relationship

# SQLAlchemy declarative base，所有模型都继承自此类
# 设置 __allow_unmapped__ = True 以兼容 SQLAlchemy 2.0 的类型注解要求
Base = declarative_base()
Base.__allow_unmapped__ = True


class Merchant(Base):
    """商户表模型。

    存储店铺的抽奖配置。门槛小于等于 0 时视为未启用抽奖，
    无论 is_active 为何值。

    Attributes:
        id: 主键，自增整数。
        shop_domain: 店铺域名，唯一，如 ``demo.myshopify.com``。
        threshold: 参与抽奖的最低订单小计，DECIMAL(12,2)，默认 0。
        billing_plan: 计费方案，STANDARD（3%）/ ENTERPRISE（2%）。
        is_active: 是否激活，卸载应用后置为 False。
        created_at: 创建时间。
        updated_at: 更新时间。

    Relationships:
        entries: 该商户的抽奖资格列表（级联删除）。
        transactions: 该商户的计费记录列表（级联删除）。
    """
    __tablename__ = "merchants"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    shop_domain: str = Column(String(255), nullable=False, unique=True)
    threshold: Decimal = Column(DECIMAL(12, 2), nullable=False, default=0)
    billing_plan: str = Column(String(20), nullable=False, default="STANDARD")
    is_active: bool = Column(Boolean, nullable=False, default=True)
    created_at: datetime = Column(DateTime, default=datetime.utcnow)
    updated_at: datetime = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    entries: List["Entry"] = relationship(
        "Entry", back_populates="merchant",
        cascade="all, delete-orphan", passive_deletes=True
    )
    transactions: List["Transaction"] = relationship(
        "Transaction", back_populates="merchant",
        cascade="all, delete-orphan", passive_deletes=True
    )


class Entry(Base):
    """抽奖资格表模型。

    一个订单至多一条记录（order_id 唯一约束），创建后 order_amount
    与 period 不再变化，is_active 由顾客选择和退款事件驱动。

    Attributes:
        id: 主键，自增整数。
        order_id: Shopify 订单号，唯一。
        merchant_id: 商户ID，外键关联 merchants 表。
        customer_id: 顾客ID，可选（GDPR 删除后置空）。
        customer_email: 顾客邮箱，可选。
        customer_name: 顾客姓名，可选。
        order_amount: 用于门槛比较的订单小计。
        period: 季度标识，如 ``2024-Q2``。
        is_active: 是否有效参与抽奖。
        created_at: 创建时间。
    """
    __tablename__ = "entries"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    order_id: str = Column(String(64), nullable=False, unique=True)
    merchant_id: int = Column(
        Integer, ForeignKey("merchants.id", ondelete="CASCADE"),
        nullable=False
    )
    customer_id: Optional[str] = Column(String(64))
    customer_email: Optional[str] = Column(String(255))
    customer_name: Optional[str] = Column(String(255))
    order_amount: Decimal = Column(DECIMAL(12, 2), nullable=False)
    period: str = Column(String(10), nullable=False, index=True)
    is_active: bool = Column(Boolean, nullable=False, default=False)
    created_at: datetime = Column(DateTime, default=datetime.utcnow)
    updated_at: datetime = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    merchant: "Merchant" = relationship("Merchant", back_populates="entries")


class Transaction(Base):
    """计费记录表模型。

    与 Entry 一一对应（同一 order_id），记录商户对该订单的计费义务。
    fee_amount 只在创建时计算一次。

    Attributes:
        id: 主键，自增整数。
        order_id: Shopify 订单号，唯一。
        merchant_id: 商户ID，外键关联 merchants 表。
        fee_amount: 手续费，DECIMAL(12,2)。
        status: PENDING / COMPLETED / FAILED / REFUNDED。
        description: 描述文本。
        created_at: 创建时间。
    """
    __tablename__ = "transactions"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    order_id: str = Column(String(64), nullable=False, unique=True)
    merchant_id: int = Column(
        Integer, ForeignKey("merchants.id", ondelete="CASCADE"),
        nullable=False
    )
    fee_amount: Decimal = Column(DECIMAL(12, 2), nullable=False)
    status: str = Column(String(20), nullable=False, default="PENDING")
    description: Optional[str] = Column(Text)
    created_at: datetime = Column(DateTime, default=datetime.utcnow)
    updated_at: datetime = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    merchant: "Merchant" = relationship(
        "Merchant", back_populates="transactions"
    )


class PrizePool(Base):
    """奖池表模型。

    每个季度一条记录，首次贡献时创建。current_amount 只通过
    原子累加增长，不存在手动扣减。

    Attributes:
        id: 主键，自增整数。
        period: 季度标识，唯一。
        current_amount: 当前奖池金额。
        is_active: 是否激活。
        created_at: 创建时间。
    """
    __tablename__ = "prize_pools"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    period: str = Column(String(10), nullable=False, unique=True)
    current_amount: Decimal = Column(
        DECIMAL(12, 2), nullable=False, default=0
    )
    is_active: bool = Column(Boolean, nullable=False, default=True)
    created_at: datetime = Column(DateTime, default=datetime.utcnow)
