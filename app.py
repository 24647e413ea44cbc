#!/usr/bin/env python3
"""RaffleBee - Shopify 抽奖应用入口

启动 Web 服务，提供：
1. Shopify webhook 接收（订单支付、退款、卸载、GDPR 删除）
2. 店面 API（顾客选择、购物车资格查询、奖池查询）

使用方式：
    python app.py

    # 指定端口
    python app.py --port 8080

    # 指定数据库
    python app.py --db sqlite:///data/rafflebee.db

环境变量（在 .env 文件中配置）：
    DATABASE_URL        数据库连接地址
    WEB_HOST            监听地址（默认 0.0.0.0）
    WEB_PORT            Web 端口（默认 8080）
    ELIGIBLE_COUNTRY    参与抽奖的账单国家（默认 US）
    DEFAULT_THRESHOLD   新商户的默认门槛（默认 0，即关闭）
"""
import argparse
import asyncio
import signal

from loguru import logger

from config.settings import settings


async def _cleanup(web, db):
    """统一资源清理函数。

    确保 Web 服务器和数据库连接被正确关闭，释放端口和文件句柄。
    """
    logger.info("正在清理资源...")

    # 1. 停止 Web 服务器（释放端口）
    if web is not None:
        try:
            await web.shutdown()
        except Exception as e:
            logger.warning(f"停止 Web 服务器时出错: {e}")

    # 2. 关闭数据库连接（释放连接池）
    if db is not None:
        try:
            db.close()
        except Exception as e:
            logger.warning(f"关闭数据库连接时出错: {e}")

    logger.info("服务已停止")


async def main():
    parser = argparse.ArgumentParser(description="RaffleBee Shopify 抽奖应用")
    parser.add_argument("--host", default=settings.web_host,
                        help=f"监听地址 (默认: {settings.web_host})")
    parser.add_argument("--port", type=int, default=settings.web_port,
                        help=f"监听端口 (默认: {settings.web_port})")
    parser.add_argument("--db", default=None,
                        help="数据库连接 URL (默认: DATABASE_URL)")
    args = parser.parse_args()

    # 用于 finally 清理的引用
    web = None
    db = None

    try:
        # 初始化数据库
        from database import DatabaseManager
        db = DatabaseManager(args.db)
        db.create_tables()
        logger.info(f"数据库已连接: {db.database_url}")

        # 业务服务
        from business.lifecycle import EntryLifecycle
        from business.merchants import MerchantService
        from business.qualification import QualificationService
        from interface.webhooks import WebhookProcessor

        lifecycle = EntryLifecycle(db)
        merchants = MerchantService(db)
        qualification = QualificationService(db)

        # 创建 Web 通道
        from interface.web.channel import WebChannel

        web = WebChannel(
            webhook_handler=WebhookProcessor(lifecycle, merchants),
            lifecycle=lifecycle,
            qualification=qualification,
            merchants=merchants,
            host=args.host,
            port=args.port,
        )

        # 启动
        await web.startup()

        print()
        print("=" * 60)
        print(f"  RaffleBee 已启动!")
        print(f"  访问地址: http://localhost:{args.port}")
        print(f"  数据库: {db.database_url}")
        print(f"  参与国家: {settings.eligible_country}")
        print("=" * 60)
        print("  按 Ctrl+C 停止服务")
        print()

        # 设置信号处理
        loop = asyncio.get_running_loop()
        shutdown_event = asyncio.Event()
        _shutdown_requested = False

        def signal_handler(signum):
            """处理退出信号"""
            nonlocal _shutdown_requested
            if _shutdown_requested:
                # 第二次收到信号，强制退出
                logger.warning("再次收到退出信号，强制退出...")
                for task in asyncio.all_tasks(loop):
                    task.cancel()
                return
            _shutdown_requested = True
            logger.info(f"收到信号 {signum}，正在关闭服务...")
            shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler, sig)

        # 保持运行，直到收到退出信号
        await shutdown_event.wait()

    except asyncio.CancelledError:
        logger.info("任务被取消，正在清理...")
    except KeyboardInterrupt:
        logger.info("收到键盘中断信号")
    finally:
        await _cleanup(web, db)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
    finally:
        print("\n已停止。")
