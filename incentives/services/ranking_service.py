"""Seller and optician leaderboards.

Sellers are ranked by the lifetime totals that card crediting maintains on
the user row. What a viewer sees depends on their role:

* seller: their own store, by coins; only when the store allows it
* manager: their store plus its branches when it is a head office, by
  real-currency points
* admin: every seller, optionally narrowed to one store and its branches,
  by real-currency points

Positions are absolute (``offset + index + 1``) so pages can be stitched.
Optician standings fold each branch into its head office.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from incentives.models.db import Optician, User
from incentives.models.db.enums import UserRole
from incentives.services.errors import NotFoundError
from incentives.utils import get_logger

logger = get_logger(__name__)

COINS = "coins"
REAL = "real"
CENTS = Decimal("0.01")


@dataclass(frozen=True)
class RankingEntry:
    position: int
    seller_id: int
    name: str
    optician_id: Optional[int]
    ranking_coins: int
    ranking_real: Decimal


@dataclass
class RankingPage:
    metric: str
    total: int
    limit: int
    offset: int
    entries: list[RankingEntry] = field(default_factory=list)
    visible: bool = True


@dataclass
class OpticianStanding:
    optician_id: int
    name: str
    total_real: Decimal
    seller_count: int
    branches: list["OpticianStanding"] = field(default_factory=list)


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENTS)


def with_branches(session: Session, optician_id: int) -> list[int]:
    """The optician itself followed by the stores whose head office it is."""
    branch_ids = [row[0] for row in session.query(Optician.id).filter(Optician.parent_id == optician_id)]
    return [optician_id, *branch_ids]


def _sellers(session: Session):
    return session.query(User).filter(User.role == UserRole.SELLER, User.is_active.is_(True))


def seller_ranking(
    session: Session,
    viewer: User,
    optician_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> RankingPage:
    """Leaderboard page for ``viewer``; ``optician_id`` only narrows an admin's view."""
    query = _sellers(session)
    if viewer.role == UserRole.ADMIN:
        metric = REAL
        if optician_id is not None:
            if session.get(Optician, optician_id) is None:
                raise NotFoundError(f"Optician {optician_id} not found")
            query = query.filter(User.optician_id.in_(with_branches(session, optician_id)))
    elif viewer.optician_id is None:
        return RankingPage(metric=COINS if viewer.role == UserRole.SELLER else REAL, total=0,
                           limit=limit, offset=offset, visible=False)
    elif viewer.role == UserRole.MANAGER:
        metric = REAL
        query = query.filter(User.optician_id.in_(with_branches(session, viewer.optician_id)))
    else:
        metric = COINS
        if not viewer.optician.ranking_visible_to_sellers:
            return RankingPage(metric=metric, total=0, limit=limit, offset=offset, visible=False)
        query = query.filter(User.optician_id == viewer.optician_id)

    if metric == COINS:
        order = (User.ranking_coins.desc(), User.ranking_real.desc(), User.id.asc())
    else:
        order = (User.ranking_real.desc(), User.ranking_coins.desc(), User.id.asc())

    total = query.count()
    rows = query.order_by(*order).offset(offset).limit(limit).all()
    entries = [
        RankingEntry(
            position=offset + index + 1,
            seller_id=user.id,
            name=user.name,
            optician_id=user.optician_id,
            ranking_coins=user.ranking_coins,
            ranking_real=_money(user.ranking_real),
        )
        for index, user in enumerate(rows)
    ]
    logger.debug("Ranking served", viewer_id=viewer.id, metric=metric, total=total, offset=offset)
    return RankingPage(metric=metric, total=total, limit=limit, offset=offset, entries=entries)


def seller_position(session: Session, seller: User) -> Optional[int]:
    """1-based coin position of ``seller`` inside their store, None without a store."""
    if seller.optician_id is None:
        return None
    ahead = (
        _sellers(session)
        .filter(User.optician_id == seller.optician_id, User.ranking_coins > seller.ranking_coins)
        .count()
    )
    return ahead + 1


def optician_ranking(session: Session) -> list[OpticianStanding]:
    rows = (
        session.query(User.optician_id, func.sum(User.ranking_real), func.count(User.id))
        .filter(User.role == UserRole.SELLER, User.is_active.is_(True), User.optician_id.isnot(None))
        .group_by(User.optician_id)
        .all()
    )
    totals = {optician_id: (_money(total), count) for optician_id, total, count in rows}
    opticians = session.query(Optician).filter(Optician.is_active.is_(True)).all()
    known = {o.id for o in opticians}

    standings = {}
    for optician in opticians:
        total, count = totals.get(optician.id, (_money(0), 0))
        standings[optician.id] = OpticianStanding(
            optician_id=optician.id, name=optician.name, total_real=total, seller_count=count,
        )

    heads = []
    for optician in opticians:
        standing = standings[optician.id]
        if optician.parent_id is None or optician.parent_id not in known:
            heads.append(standing)
            continue
        head = standings[optician.parent_id]
        head.branches.append(standing)

    for head in heads:
        head.total_real = head.total_real + sum((b.total_real for b in head.branches), Decimal("0"))
        head.seller_count = head.seller_count + sum(b.seller_count for b in head.branches)
        head.branches.sort(key=lambda b: (-b.total_real, b.optician_id))
    heads.sort(key=lambda h: (-h.total_real, h.optician_id))
    return heads


__all__ = [
    "RankingEntry",
    "RankingPage",
    "OpticianStanding",
    "with_branches",
    "seller_ranking",
    "seller_position",
    "optician_ranking",
]
