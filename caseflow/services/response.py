class ListResponseMixin:
    """Adds ``list_response`` wrapping ``list`` results in a ListResponse body.

    ``limit`` and ``offset`` are the trailing positional arguments of every
    ``list`` signature in the service layer.
    """

    @classmethod
    def list_response(cls, db, *args, **kwargs) -> dict:
        items = cls.list(db, *args, **kwargs)
        limit = kwargs.get("limit", args[-2] if len(args) >= 2 else None)
        offset = kwargs.get("offset", args[-1] if len(args) >= 1 else None)
        return {"items": items, "count": len(items), "limit": limit, "offset": offset}
