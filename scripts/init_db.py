"""初始化数据库

    python scripts/init_db.py
    python scripts/init_db.py --shop demo.myshopify.com --threshold 75
"""
import argparse
import sys
import os

# 添加项目根目录到路径
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import DatabaseManager
from business.merchants import MerchantService
from loguru import logger


def init_database(database_url=None, shop=None, threshold=None, plan="STANDARD"):
    """创建所有表，并可选地预置一个商户"""
    logger.info("Initializing database...")

    db = DatabaseManager(database_url)

    logger.info("Creating tables...")
    db.create_tables()

    if shop:
        service = MerchantService(db)
        merchant = service.install(shop)
        if threshold is not None:
            merchant = service.update_settings(shop, threshold, plan)
        logger.info(
            f"Seeded merchant: {merchant.shop_domain} "
            f"(threshold ${merchant.threshold}, plan {merchant.billing_plan})"
        )

    db.close()
    logger.info("Database initialization completed!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="初始化 RaffleBee 数据库")
    parser.add_argument("--db", default=None, help="数据库连接 URL")
    parser.add_argument("--shop", default=None, help="预置商户的店铺域名")
    parser.add_argument("--threshold", default=None, help="预置商户的门槛金额")
    parser.add_argument("--plan", default="STANDARD", help="计费方案 STANDARD/ENTERPRISE")
    args = parser.parse_args()
    init_database(args.db, args.shop, args.threshold, args.plan)
