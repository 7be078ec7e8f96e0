"""Storage engine: connection management, helpers and schema migrations."""
