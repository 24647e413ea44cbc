"""抽奖资格生命周期状态机。

状态由计费记录的状态推导（Entry.is_active 与之保持一致）：

    NONE        没有该订单的记录
    PENDING     Entry.is_active=False, Transaction=PENDING
    ACTIVE      Entry.is_active=True,  Transaction=COMPLETED
    DECLINED    Entry.is_active=False, Transaction=FAILED
    DEACTIVATED Entry.is_active=False, Transaction=REFUNDED

所有状态迁移都由 TRANSITIONS 表定义，并通过 ``transition()`` 统一校验；
表中不存在的迁移视为幂等的空操作。写入数据库时使用条件插入与
比较并设置，重复或并发投递的同一事件只会有一次真正生效，
因此奖池贡献不会被重复累加。

退款停用不会回滚已经计入奖池的贡献。
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from business.errors import NotFoundError, PersistenceError
from business.events import CustomerOptIn, OrderPaid, OrderUpdated
from business.fees import compute_contribution, compute_fee, quantize_money
from business.periods import current_period
from business.qualification import is_sweepstakes_enabled
from config.settings import settings
from database import DatabaseManager
from database.models import Transaction


class EntryState(str, Enum):
    """抽奖资格状态"""
    NONE = "NONE"
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    DECLINED = "DECLINED"
    DEACTIVATED = "DEACTIVATED"


class EntryEvent(str, Enum):
    """驱动状态迁移的事件"""
    ORDER_PAID = "ORDER_PAID"
    OPT_IN = "OPT_IN"
    OPT_OUT = "OPT_OUT"
    REFUND = "REFUND"


class TransactionStatus(str, Enum):
    """计费记录状态"""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class OutcomeStatus(str, Enum):
    """事件处理结果"""
    APPLIED = "APPLIED"      # 发生了状态迁移
    UNCHANGED = "UNCHANGED"  # 合法事件，但无需迁移（重复投递、部分退款等）
    SKIPPED = "SKIPPED"      # 不适用（商户未激活、未达门槛、非美国订单等）


TRANSITIONS: Dict[Tuple[EntryState, EntryEvent], EntryState] = {
    (EntryState.NONE, EntryEvent.ORDER_PAID): EntryState.PENDING,
    (EntryState.PENDING, EntryEvent.OPT_IN): EntryState.ACTIVE,
    (EntryState.DECLINED, EntryEvent.OPT_IN): EntryState.ACTIVE,
    (EntryState.PENDING, EntryEvent.OPT_OUT): EntryState.DECLINED,
    (EntryState.PENDING, EntryEvent.REFUND): EntryState.DEACTIVATED,
    (EntryState.ACTIVE, EntryEvent.REFUND): EntryState.DEACTIVATED,
    (EntryState.DECLINED, EntryEvent.REFUND): EntryState.DEACTIVATED,
}

STATE_TO_STATUS: Dict[EntryState, TransactionStatus] = {
    EntryState.PENDING: TransactionStatus.PENDING,
    EntryState.ACTIVE: TransactionStatus.COMPLETED,
    EntryState.DECLINED: TransactionStatus.FAILED,
    EntryState.DEACTIVATED: TransactionStatus.REFUNDED,
}

STATUS_TO_STATE: Dict[str, EntryState] = {
    status.value: state for state, status in STATE_TO_STATUS.items()
}


def transition(state: EntryState, event: EntryEvent) -> Optional[EntryState]:
    """返回 (state, event) 的目标状态；不允许的迁移返回 None。"""
    return TRANSITIONS.get((state, event))


def source_states(event: EntryEvent, target: EntryState) -> List[EntryState]:
    """所有能通过 event 迁移到 target 的源状态。"""
    return [
        source for (source, evt), dest in TRANSITIONS.items()
        if evt == event and dest == target
    ]


def state_of(transaction: Optional[Transaction]) -> EntryState:
    """由计费记录推导抽奖资格状态。"""
    if transaction is None:
        return EntryState.NONE
    return STATUS_TO_STATE[transaction.status]


@dataclass(frozen=True)
class EventOutcome:
    """事件处理结果

    Attributes:
        status: APPLIED / UNCHANGED / SKIPPED
        order_id: 订单号
        state: 处理后的资格状态
        reason: 说明文本（跳过或未变化的原因）
        contribution: 本次计入奖池的金额（仅参与成功时）
        pool_total: 累加后的奖池金额（仅参与成功时）
    """
    status: OutcomeStatus
    order_id: str
    state: EntryState
    reason: str = ""
    contribution: Optional[Decimal] = None
    pool_total: Optional[Decimal] = None

    @property
    def applied(self) -> bool:
        return self.status == OutcomeStatus.APPLIED


class EntryLifecycle:
    """抽奖资格生命周期处理器。

    处理三类事件：订单支付、顾客选择、订单更新（退款）。
    每个事件的全部写入在一个数据库事务内完成，失败时整体回滚
    并抛出 PersistenceError。

    Example::

        lifecycle = EntryLifecycle(db)
        lifecycle.handle_order_paid(OrderPaid(...))
        lifecycle.handle_customer_decision(CustomerOptIn(order_id, shop, True))
    """

    def __init__(self, db: DatabaseManager,
                 clock: Optional[Callable[[], datetime]] = None) -> None:
        """
        Args:
            db: 数据库管理器
            clock: 时钟函数，默认返回当前 UTC 时间
        """
        self.db = db
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ================================================================
    # 订单支付：NONE → PENDING
    # ================================================================

    def handle_order_paid(self, event: OrderPaid,
                          now: Optional[datetime] = None) -> EventOutcome:
        """为达标订单创建待确认的抽奖资格与计费记录。

        以下情况跳过（记录日志，正常确认，不触发重试）：
        商户不存在、未激活或门槛 <= 0，小计低于门槛，账单国家不符，已存在记录。
        """
        order_id = event.order_id
        try:
            merchant = self.db.merchants.get_by_shop(event.shop_domain)
            if not is_sweepstakes_enabled(merchant):
                return self._skip(
                    order_id, EntryState.NONE,
                    f"Sweepstakes not enabled for shop: {event.shop_domain}"
                )

            threshold = Decimal(str(merchant.threshold))
            if event.subtotal < threshold:
                return self._skip(
                    order_id, EntryState.NONE,
                    f"Order {order_id} below threshold: "
                    f"${event.subtotal} < ${threshold}"
                )

            country = (event.billing_country or "").upper()
            if country != settings.eligible_country:
                return self._skip(
                    order_id, EntryState.NONE,
                    f"Order {order_id} not from {settings.eligible_country} customer"
                )

            target = transition(EntryState.NONE, EntryEvent.ORDER_PAID)
            period = current_period(now or self._clock())
            fee = compute_fee(event.subtotal, merchant.billing_plan)

            with self.db.transaction() as session:
                created = self.db.entries.create_if_absent({
                    "order_id": order_id,
                    "merchant_id": merchant.id,
                    "customer_id": event.customer_id,
                    "customer_email": event.customer_email,
                    "customer_name": event.customer_name or "Unknown",
                    "order_amount": quantize_money(event.subtotal),
                    "period": period,
                }, session)
                if created:
                    self.db.transactions.create_if_absent({
                        "order_id": order_id,
                        "merchant_id": merchant.id,
                        "fee_amount": fee,
                        "description": (
                            "Transaction fee for order "
                            f"#{event.order_number or order_id}"
                        ),
                    }, session)
        except SQLAlchemyError as e:
            raise self._persistence_error("orders/paid", order_id, e)

        if not created:
            return self._skip(
                order_id, self._current_state(order_id),
                f"Entry already exists for order {order_id}"
            )

        logger.info(
            f"Created pending entry for order {order_id} ({period}), "
            f"fee ${fee}, customer: {event.customer_email}"
        )
        return EventOutcome(
            status=OutcomeStatus.APPLIED, order_id=order_id, state=target
        )

    # ================================================================
    # 顾客选择：PENDING/DECLINED → ACTIVE，PENDING → DECLINED
    # ================================================================

    def handle_customer_decision(self, event: CustomerOptIn) -> EventOutcome:
        """应用顾客的参与/放弃选择。

        参与成功时，把该订单手续费的 50% 计入资格所属季度的奖池。

        Raises:
            NotFoundError: 商户或抽奖资格不存在。
            PersistenceError: 数据库写入失败。
        """
        order_id = event.order_id
        evt = EntryEvent.OPT_IN if event.opted_in else EntryEvent.OPT_OUT

        try:
            merchant = self.db.merchants.get_by_shop(event.shop_domain)
            if merchant is None:
                raise NotFoundError(f"Merchant not found: {event.shop_domain}")

            entry = self.db.entries.get_by_order(order_id)
            if entry is None or entry.merchant_id != merchant.id:
                raise NotFoundError(f"Entry not found for order {order_id}")

            state = state_of(self.db.transactions.get_by_order(order_id))
            target = transition(state, evt)
            if target is None:
                return self._unchanged(order_id, state, evt)

            contribution = None
            pool_total = None
            with self.db.transaction() as session:
                won = self._compare_and_set(order_id, evt, target, session)
                if won and target == EntryState.ACTIVE:
                    transaction = self.db.transactions.get_by_order(
                        order_id, session=session
                    )
                    contribution = compute_contribution(transaction.fee_amount)
                    pool_total = self.db.prize_pools.apply_contribution(
                        entry.period, contribution, session=session
                    )
        except SQLAlchemyError as e:
            raise self._persistence_error("opt-in", order_id, e)

        if not won:
            # 并发的同一事件已经完成了迁移
            return self._unchanged(order_id, self._current_state(order_id), evt)

        if target == EntryState.ACTIVE:
            logger.info(
                f"Entry activated for order {order_id}, "
                f"prize pool {entry.period} +${contribution} = ${pool_total}"
            )
        else:
            logger.info(f"Opt-out recorded for order {order_id}")

        return EventOutcome(
            status=OutcomeStatus.APPLIED, order_id=order_id, state=target,
            contribution=contribution, pool_total=pool_total,
        )

    # ================================================================
    # 订单更新（退款）：任意已存在状态 → DEACTIVATED
    # ================================================================

    def handle_order_updated(self, event: OrderUpdated) -> EventOutcome:
        """处理退款：全额退款或剩余金额低于门槛时停用资格。

        部分退款后仍达门槛则不做任何改变。已计入奖池的贡献不回滚。
        """
        order_id = event.order_id
        try:
            merchant = self.db.merchants.get_by_shop(event.shop_domain)
            if merchant is None:
                return self._skip(
                    order_id, EntryState.NONE,
                    f"Merchant not found for shop: {event.shop_domain}"
                )

            entry = self.db.entries.get_by_order(order_id)
            if entry is None or entry.merchant_id != merchant.id:
                return self._skip(
                    order_id, EntryState.NONE,
                    f"No entry found for order {order_id}"
                )

            threshold = Decimal(str(merchant.threshold))
            remaining = event.subtotal - event.total_refunded
            state = state_of(self.db.transactions.get_by_order(order_id))

            if event.total_refunded < event.subtotal and remaining >= threshold:
                logger.info(
                    f"Partial refund for order {order_id}. Remaining: "
                    f"${remaining}, threshold: ${threshold}. Entry unchanged."
                )
                return EventOutcome(
                    status=OutcomeStatus.UNCHANGED, order_id=order_id,
                    state=state, reason="Partial refund above threshold",
                )

            target = transition(state, EntryEvent.REFUND)
            if target is None:
                return self._unchanged(order_id, state, EntryEvent.REFUND)

            with self.db.transaction() as session:
                won = self._compare_and_set(
                    order_id, EntryEvent.REFUND, target, session
                )
        except SQLAlchemyError as e:
            raise self._persistence_error("orders/updated", order_id, e)

        if not won:
            return self._unchanged(
                order_id, self._current_state(order_id), EntryEvent.REFUND
            )

        logger.info(
            f"Deactivated entry for order {order_id} due to refund. "
            f"Total refunded: ${event.total_refunded}"
        )
        return EventOutcome(
            status=OutcomeStatus.APPLIED, order_id=order_id, state=target
        )

    # ================================================================
    # 内部方法
    # ================================================================

    def _compare_and_set(self, order_id: str, event: EntryEvent,
                         target: EntryState, session) -> bool:
        """按迁移表原子地把计费记录与资格切换到目标状态。

        只有当前状态仍属于合法源状态时才会更新，返回是否由本次调用完成。
        """
        expected = [
            STATE_TO_STATUS[source].value
            for source in source_states(event, target)
        ]
        won = self.db.transactions.compare_and_set_status(
            order_id, expected, STATE_TO_STATUS[target].value, session
        )
        if won:
            self.db.entries.set_active(
                order_id, target == EntryState.ACTIVE, session
            )
        return won

    def _current_state(self, order_id: str) -> EntryState:
        return state_of(self.db.transactions.get_by_order(order_id))

    @staticmethod
    def _skip(order_id: str, state: EntryState, reason: str) -> EventOutcome:
        logger.info(reason)
        return EventOutcome(
            status=OutcomeStatus.SKIPPED, order_id=order_id,
            state=state, reason=reason,
        )

    @staticmethod
    def _unchanged(order_id: str, state: EntryState,
                   event: EntryEvent) -> EventOutcome:
        reason = f"{event.value} ignored for order {order_id} in state {state.value}"
        logger.warning(reason)
        return EventOutcome(
            status=OutcomeStatus.UNCHANGED, order_id=order_id,
            state=state, reason=reason,
        )

    @staticmethod
    def _persistence_error(source: str, order_id: str,
                           error: SQLAlchemyError) -> PersistenceError:
        logger.error(f"{source} failed for order {order_id}: {error}")
        return PersistenceError(
            f"Failed to apply {source} for order {order_id}: {error}"
        )
