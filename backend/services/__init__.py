"""Business logic. Services flush; routers decide when to commit."""
