"""
Capability checks shared by every route.

Each rule answers "may this caller perform ``action`` on this record?".
Actions use the ``resource:verb`` form (``job:view``, ``quote:withdraw``).
Staff pass every record rule; customers are scoped to their own customer
profile and trades to the records assigned to their trade profile.
"""
from typing import Any, Callable, Dict

from fastapi import HTTPException, status

from ..models.models import (
    CustomerProfile,
    Job,
    Notification,
    Quote,
    TradeProfile,
    User,
)
from .reference import Role


def is_staff(user: User) -> bool:
    return user.role == Role.STAFF.value


def is_customer(user: User) -> bool:
    return user.role == Role.CUSTOMER.value


def is_trade(user: User) -> bool:
    return user.role == Role.TRADE.value


def can_view_job(user: User, job: Job) -> bool:
    if is_staff(user):
        return True
    if is_customer(user):
        return user.customer_id is not None and job.customer_id == user.customer_id
    if is_trade(user):
        return user.trade_id is not None and job.assigned_trade_id == user.trade_id
    return False


def can_manage_attachments(user: User, job: Job) -> bool:
    return can_view_job(user, job)


def can_read_job_quotes(user: User, job: Job) -> bool:
    """A trade keeps read access to its own quotes after being unassigned."""
    if can_view_job(user, job):
        return True
    return is_trade(user) and user.trade_id is not None and any(q.trade_id == user.trade_id for q in job.quotes)


def can_quote_job(user: User, job: Job) -> bool:
    """Staff may quote on behalf of any trade; a trade only for a job assigned to them."""
    if is_staff(user):
        return True
    return is_trade(user) and user.trade_id is not None and job.assigned_trade_id == user.trade_id


def can_resolve_quote(user: User, quote: Quote) -> bool:
    if is_staff(user):
        return True
    if is_customer(user):
        return user.customer_id is not None and quote.job.customer_id == user.customer_id
    return False


def can_withdraw_quote(user: User, quote: Quote) -> bool:
    return is_trade(user) and user.trade_id is not None and quote.trade_id == user.trade_id


def can_view_customer(user: User, customer: CustomerProfile) -> bool:
    if is_staff(user):
        return True
    return is_customer(user) and customer.id == user.customer_id


def can_update_trade(user: User, trade: TradeProfile) -> bool:
    if is_staff(user):
        return True
    return is_trade(user) and trade.id == user.trade_id


def owns_notification(user: User, notification: Notification) -> bool:
    return notification.user_id == user.id


POLICIES: Dict[str, Callable[[User, Any], bool]] = {
    "job:view": can_view_job,
    "job:attachments": can_manage_attachments,
    "job:quotes": can_read_job_quotes,
    "job:quote": can_quote_job,
    "quote:resolve": can_resolve_quote,
    "quote:withdraw": can_withdraw_quote,
    "customer:view": can_view_customer,
    "trade:update": can_update_trade,
    "notification:manage": owns_notification,
}


def is_allowed(user: User, action: str, resource: Any) -> bool:
    rule = POLICIES.get(action)
    if rule is None:
        raise KeyError(f"Unknown action {action}")
    return rule(user, resource)


def authorize(user: User, action: str, resource: Any, detail: str = "Access denied") -> None:
    """Raise 403 unless ``user`` may perform ``action`` on ``resource``."""
    if not is_allowed(user, action, resource):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
