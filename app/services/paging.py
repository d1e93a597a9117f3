"""Sort-parameter resolution shared by the paged listing services."""

from app.exceptions import InvalidParameterError


def resolve_sort(allowed: dict, sort_by: str, sort_direction: str):
    """
    Map a public sort field name and direction onto an ORDER BY clause.

    Raises:
        InvalidParameterError: Unknown field or a direction other than asc/desc.
    """
    column = allowed.get(sort_by)
    if column is None:
        raise InvalidParameterError("sortBy", sort_by)

    direction = (sort_direction or "").lower()
    if direction == "asc":
        return column.asc()
    if direction == "desc":
        return column.desc()
    raise InvalidParameterError("sortDirection", sort_direction)
