"""
Reporting service.

Read-only aggregations over jobs, quotes and accounts, scoped by the caller's
role. Nothing here is cached; every call queries the current state.
Day differences are computed in Python from the stored timestamps so the same
code runs on SQLite and PostgreSQL.
"""
import uuid
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import case, func
from sqlalchemy.orm import Query, Session

from ..models.models import (
    Category,
    CustomerProfile,
    Job,
    JobStatus,
    PriorityLevel,
    Quote,
    TradeProfile,
    User,
)
from .formatting import money
from .permissions import is_customer, is_staff, is_trade
from .reference import JobStatusCode, QuoteStatus

TOP_N = 10


def _bounds(start_date: Optional[date], end_date: Optional[date]) -> Optional[Tuple[datetime, datetime]]:
    """Both dates are needed to bound a report; the end date is inclusive."""
    if start_date and end_date:
        return datetime.combine(start_date, time.min), datetime.combine(end_date + timedelta(days=1), time.min)
    return None


def _within(query: Query, column, bounds) -> Query:
    if bounds:
        query = query.filter(column >= bounds[0], column < bounds[1])
    return query


def _count(query: Query) -> int:
    return query.count()


def _sum(value) -> float:
    return money(value) or 0.0


def _avg_days(pairs: Iterable[Tuple[Optional[datetime], Optional[datetime]]]) -> float:
    spans = [(end - start).total_seconds() / 86400 for start, end in pairs if start and end]
    if not spans:
        return 0
    return round(sum(spans) / len(spans), 1)


def _is_completed():
    return JobStatus.code == JobStatusCode.COMPLETED.value


def dashboard(db: Session, user: User) -> dict:
    jobs = db.query(Job).join(JobStatus, Job.status_id == JobStatus.id)

    if is_customer(user):
        own = jobs.filter(Job.customer_id == user.customer_id)
        spent = (
            db.query(func.coalesce(func.sum(Job.final_cost), 0))
            .filter(Job.customer_id == user.customer_id, Job.final_cost.isnot(None))
            .scalar()
        )
        return {
            "total_jobs": _count(own),
            "active_jobs": _count(own.filter(JobStatus.is_final.is_(False))),
            "completed_jobs": _count(own.filter(_is_completed())),
            "pending_approval": _count(own.filter(JobStatus.code == JobStatusCode.PENDING_APPROVAL.value)),
            "total_spent": _sum(spent),
        }

    if is_staff(user):
        revenue = db.query(func.coalesce(func.sum(Job.final_cost), 0)).filter(Job.final_cost.isnot(None)).scalar()
        return {
            "total_jobs": _count(jobs),
            "active_jobs": _count(jobs.filter(JobStatus.is_final.is_(False))),
            "new_jobs": _count(jobs.filter(JobStatus.code == JobStatusCode.NEW.value)),
            "awaiting_quotes": _count(jobs.filter(JobStatus.code == JobStatusCode.AWAITING_QUOTES.value)),
            "pending_approval": _count(jobs.filter(JobStatus.code == JobStatusCode.PENDING_APPROVAL.value)),
            "total_customers": db.query(CustomerProfile).count(),
            "total_trades": db.query(TradeProfile).filter(TradeProfile.is_active.is_(True)).count(),
            "total_revenue": _sum(revenue),
        }

    if is_trade(user):
        assigned = jobs.filter(Job.assigned_trade_id == user.trade_id)
        quotes = db.query(Quote).filter(Quote.trade_id == user.trade_id)
        earnings = (
            db.query(func.coalesce(func.sum(Job.final_cost), 0))
            .join(JobStatus, Job.status_id == JobStatus.id)
            .filter(Job.assigned_trade_id == user.trade_id, _is_completed())
            .scalar()
        )
        return {
            "assigned_jobs": _count(assigned),
            "active_jobs": _count(assigned.filter(JobStatus.is_final.is_(False))),
            "completed_jobs": _count(assigned.filter(_is_completed())),
            "pending_quotes": _count(quotes.filter(Quote.status == QuoteStatus.PENDING.value)),
            "approved_quotes": _count(quotes.filter(Quote.status == QuoteStatus.APPROVED.value)),
            "total_earnings": _sum(earnings),
        }

    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")


def _scope_jobs(query: Query, user: User, customer_id: Optional[uuid.UUID] = None) -> Query:
    if is_customer(user):
        return query.filter(Job.customer_id == user.customer_id)
    if is_trade(user):
        return query.filter(Job.assigned_trade_id == user.trade_id)
    if customer_id:
        return query.filter(Job.customer_id == customer_id)
    return query


def job_statistics(
    db: Session,
    user: User,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    customer_id: Optional[uuid.UUID] = None,
) -> dict:
    bounds = _bounds(start_date, end_date)
    counted = func.count(Job.id).label("count")

    by_status = _within(
        _scope_jobs(db.query(JobStatus.name, counted).join(Job, Job.status_id == JobStatus.id), user, customer_id),
        Job.created_at, bounds,
    ).group_by(JobStatus.name).order_by(counted.desc()).all()

    by_priority = _within(
        _scope_jobs(
            db.query(PriorityLevel.name, PriorityLevel.color_code, counted).join(Job, Job.priority_id == PriorityLevel.id),
            user, customer_id,
        ),
        Job.created_at, bounds,
    ).group_by(PriorityLevel.name, PriorityLevel.color_code, PriorityLevel.sort_order).order_by(PriorityLevel.sort_order).all()

    by_category = _within(
        _scope_jobs(db.query(Category.name, counted).join(Job, Job.category_id == Category.id), user, customer_id),
        Job.created_at, bounds,
    ).group_by(Category.name).order_by(counted.desc()).limit(TOP_N).all()

    return {
        "by_status": [{"name": name, "count": count} for name, count in by_status],
        "by_priority": [{"name": name, "color_code": color, "count": count} for name, color, count in by_priority],
        "by_category": [{"name": name, "count": count} for name, count in by_category],
    }


def financial(db: Session, user: User, start_date: Optional[date] = None, end_date: Optional[date] = None) -> dict:
    if not (is_customer(user) or is_staff(user)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")

    bounds = _bounds(start_date, end_date)
    completed = _is_completed()
    completed_cost = case((completed, Job.final_cost))

    columns = [
        func.count(Job.id),
        func.count(case((completed, 1))),
        func.coalesce(func.sum(completed_cost), 0),
        func.coalesce(func.avg(completed_cost), 0),
    ]
    if is_staff(user):
        columns += [func.coalesce(func.sum(Job.estimated_cost), 0), func.coalesce(func.sum(Job.final_cost), 0)]

    summary_row = _within(
        _scope_jobs(db.query(*columns).select_from(Job).join(JobStatus, Job.status_id == JobStatus.id), user),
        Job.created_at, bounds,
    ).one()

    completed_jobs = (
        db.query(Job)
        .join(JobStatus, Job.status_id == JobStatus.id)
        .filter(completed, Job.final_cost.isnot(None))
    )

    if is_customer(user):
        total_jobs, done, spent, average = summary_row
        spent_col = func.coalesce(func.sum(Job.final_cost), 0).label("total")
        by_category = _within(
            _scope_jobs(completed_jobs.join(Category, Job.category_id == Category.id), user)
            .with_entities(Category.name, spent_col),
            Job.created_at, bounds,
        ).group_by(Category.name).order_by(spent_col.desc()).all()
        return {
            "summary": {
                "total_jobs": total_jobs,
                "completed_jobs": done,
                "total_spent": _sum(spent),
                "avg_job_cost": round(_sum(average), 2),
            },
            "by_category": [{"name": name, "total": _sum(total)} for name, total in by_category],
        }

    total_jobs, done, revenue, average, estimated, actual = summary_row
    revenue_col = func.coalesce(func.sum(Job.final_cost), 0).label("revenue")
    by_category = _within(
        completed_jobs.join(Category, Job.category_id == Category.id)
        .with_entities(Category.name, revenue_col, func.count(Job.id)),
        Job.created_at, bounds,
    ).group_by(Category.name).order_by(revenue_col.desc()).all()

    spent_col = func.coalesce(func.sum(Job.final_cost), 0).label("total_spent")
    top_customers = _within(
        completed_jobs.join(CustomerProfile, Job.customer_id == CustomerProfile.id)
        .with_entities(CustomerProfile.id, CustomerProfile.organization_name, func.count(Job.id), spent_col),
        Job.created_at, bounds,
    ).group_by(CustomerProfile.id, CustomerProfile.organization_name).order_by(spent_col.desc()).limit(TOP_N).all()

    return {
        "summary": {
            "total_jobs": total_jobs,
            "completed_jobs": done,
            "total_revenue": _sum(revenue),
            "avg_job_value": round(_sum(average), 2),
            "total_estimated": _sum(estimated),
            "total_actual": _sum(actual),
        },
        "by_category": [{"name": name, "revenue": _sum(rev), "jobs": jobs} for name, rev, jobs in by_category],
        "top_customers": [
            {"customer_id": str(cid), "organization_name": org, "total_jobs": jobs, "total_spent": _sum(spent)}
            for cid, org, jobs, spent in top_customers
        ],
    }


def performance(db: Session, user: User, start_date: Optional[date] = None, end_date: Optional[date] = None) -> dict:
    if not is_staff(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff access required")

    bounds = _bounds(start_date, end_date)
    completed = _is_completed()

    completion_spans = _within(
        db.query(Job.created_at, Job.completed_date)
        .join(JobStatus, Job.status_id == JobStatus.id)
        .filter(completed, Job.completed_date.isnot(None)),
        Job.created_at, bounds,
    ).all()

    first_quote = (
        db.query(Quote.job_id, func.min(Quote.created_at).label("first_quote_at"))
        .group_by(Quote.job_id)
        .subquery()
    )
    quote_spans = _within(
        db.query(Job.created_at, first_quote.c.first_quote_at).join(first_quote, first_quote.c.job_id == Job.id),
        Job.created_at, bounds,
    ).all()

    total_jobs, completed_jobs = _within(
        db.query(func.count(Job.id), func.count(case((completed, 1))))
        .select_from(Job)
        .join(JobStatus, Job.status_id == JobStatus.id),
        Job.created_at, bounds,
    ).one()
    percentage = round(completed_jobs / total_jobs * 100, 2) if total_jobs else 0

    trade_rows = _within(
        db.query(TradeProfile.id, TradeProfile.company_name, TradeProfile.rating, Job.scheduled_date, Job.completed_date)
        .join(Job, Job.assigned_trade_id == TradeProfile.id)
        .join(JobStatus, Job.status_id == JobStatus.id)
        .filter(completed),
        Job.completed_date, bounds,
    ).all()

    trades = {}
    for trade_id, company_name, rating, scheduled, finished in trade_rows:
        entry = trades.setdefault(trade_id, {
            "trade_id": str(trade_id),
            "company_name": company_name,
            "rating": money(rating),
            "completed_jobs": 0,
            "spans": [],
        })
        entry["completed_jobs"] += 1
        entry["spans"].append((scheduled, finished))

    top_trades: List[dict] = []
    for entry in sorted(trades.values(), key=lambda t: (-t["completed_jobs"], t["company_name"]))[:TOP_N]:
        spans = entry.pop("spans")
        entry["avg_completion_days"] = _avg_days(spans) if any(s and f for s, f in spans) else None
        top_trades.append(entry)

    return {
        "avg_time_to_completion_days": _avg_days(completion_spans),
        "avg_time_to_first_quote_days": _avg_days(quote_spans),
        "completion_rate": {
            "total_jobs": total_jobs,
            "completed_jobs": completed_jobs,
            "completion_percentage": percentage,
        },
        "top_performing_trades": top_trades,
    }
