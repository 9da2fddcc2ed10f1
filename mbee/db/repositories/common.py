"""
Query helpers shared by the resource repositories.
"""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class FindOptions:
    """Common list filters accepted by every find operation."""
    include_archived: bool = False
    # True restricts results to archived rows only
    archived: Optional[bool] = None
    skip: int = 0
    limit: Optional[int] = None


def apply_find_options(query, model, options: Optional[FindOptions]):
    options = options or FindOptions()
    if options.archived is True:
        query = query.filter(model.archived.is_(True))
    elif options.archived is False or not options.include_archived:
        query = query.filter(model.archived.is_(False))
    if options.skip:
        query = query.offset(options.skip)
    if options.limit:
        query = query.limit(options.limit)
    return query
