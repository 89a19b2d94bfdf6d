# distsync/core/context.py

import contextvars

correlation_id_ctx = contextvars.ContextVar("correlation_id", default=None)
client_id_ctx = contextvars.ContextVar("client_id", default=None)
