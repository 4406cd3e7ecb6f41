from __future__ import annotations
from typing import Any, Dict, Mapping
from medspa.errors import ValidationError


def apply_filters(query, specs: Dict[str, Dict[str, Any]], params: Mapping[str, Any]):
    """Generic filter builder.

    specs: { param_name: { 'op': callable(query, value)->query, 'coerce': type/func, 'validate': callable(optional) } }

    Filters are applied with AND semantics, so each one can only narrow the query.
    Params without a spec are ignored.
    """
    for name, meta in specs.items():
        if name not in params or params[name] is None or params[name] == '':
            continue
        val = params[name]
        if 'coerce' in meta:
            try:
                val = meta['coerce'](val)
            except (TypeError, ValueError):
                raise ValidationError(f'{name} invalid')
        if 'validate' in meta and not meta['validate'](val):
            raise ValidationError(f'{name} invalid')
        query = meta['op'](query, val)
    return query
