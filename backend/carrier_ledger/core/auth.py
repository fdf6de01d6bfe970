from uuid import UUID

from fastapi import HTTPException, Request

from carrier_ledger.models.shared import DEFAULT_STORE_ID


def get_current_store(request: Request) -> UUID:
    """Resolve the store the request operates on.

    Reads the ``X-Store-Id`` header; requests without it use the default store.
    """
    store_id_header = request.headers.get("X-Store-Id")
    if store_id_header:
        try:
            return UUID(store_id_header)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid X-Store-Id header") from None
    return DEFAULT_STORE_ID
