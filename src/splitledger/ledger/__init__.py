"""Balance computation, settlement suggestions and the ledger service."""
