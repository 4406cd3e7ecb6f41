from __future__ import annotations
from typing import Iterable, Mapping, Optional, Tuple
from flask import make_response
from sqlalchemy import func
from medspa.config.pagination import normalize_pagination
from medspa.errors import ValidationError
import hashlib


def apply_pagination(q, params: Mapping[str, str], count_column) -> Tuple[object, int, int, int]:
    try:
        limit, offset = normalize_pagination(params.get('limit'), params.get('offset'))
    except ValueError as e:
        raise ValidationError(str(e))
    # Count the key column only; Query.count() would select every mapped column
    total = q.order_by(None).with_entities(func.count(count_column)).scalar()
    return q.offset(offset).limit(limit), total, limit, offset


def compute_etag(ids: Iterable[int], total: int, limit: int, offset: int, extra: Optional[str] = '') -> str:
    seed = f"{list(ids)}|{total}|{limit}|{offset}|{extra or ''}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def build_list_payload(rows: list, total: int, limit: int, offset: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows)
        }
    }


def make_list_response(rows: list, total: int, limit: int, offset: int):
    """JSON list response carrying an ETag over the returned ids and page window."""
    etag = compute_etag([r.get('id') for r in rows], total, limit, offset)
    resp = make_response(build_list_payload(rows, total, limit, offset))
    resp.headers['ETag'] = etag
    # Scoped per caller; shared caches must not reuse it across identities
    resp.headers['Cache-Control'] = 'private, no-store'
    return resp
