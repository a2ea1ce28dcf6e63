"""Table declarations for the tables the assistant pipeline reads and writes.

The business tables are owned by the CRM platform; these declarations mirror
only the columns the pipeline touches so migrations and tests can create them.
"""

import sqlalchemy as sa

metadata = sa.MetaData()


def _id_column() -> sa.Column:
    return sa.Column("id", sa.String(36), primary_key=True)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime, server_default=sa.func.current_timestamp())


tenants = sa.Table(
    "tenants", metadata,
    _id_column(),
    sa.Column("name", sa.String(255), nullable=False),
    sa.Column("tenant_type", sa.String(20), nullable=False),  # operator | admin | reseller
    sa.Column("parent_tenant_id", sa.String(36), index=True),
    sa.Column("status", sa.String(20), nullable=False, server_default="active"),
    _created_at(),
)

tenant_settings = sa.Table(
    "tenant_settings", metadata,
    _id_column(),
    sa.Column("tenant_id", sa.String(36), nullable=False, index=True),
    sa.Column("key", sa.String(100), nullable=False),
    sa.Column("value", sa.Text),
    sa.UniqueConstraint("tenant_id", "key", name="uq_tenant_settings_key"),
)

customers = sa.Table(
    "customers", metadata,
    _id_column(),
    sa.Column("tenant_id", sa.String(36), nullable=False, index=True),
    sa.Column("full_name", sa.String(255), nullable=False),
    sa.Column("email", sa.String(255)),
    sa.Column("whatsapp", sa.String(40)),
    sa.Column("status", sa.String(20), nullable=False, server_default="active"),
    _created_at(),
)

customer_items = sa.Table(
    "customer_items", metadata,
    _id_column(),
    sa.Column("tenant_id", sa.String(36), nullable=False, index=True),
    sa.Column("customer_id", sa.String(36), nullable=False, index=True),
    sa.Column("product_name", sa.String(255), nullable=False),
    sa.Column("plan_name", sa.String(255)),
    sa.Column("price", sa.Numeric(12, 2), nullable=False, server_default="0"),
    sa.Column("status", sa.String(20), nullable=False, server_default="active"),
    sa.Column("due_date", sa.Date),
    sa.Column("expires_at", sa.Date),
    _created_at(),
)

customer_charges = sa.Table(
    "customer_charges", metadata,
    _id_column(),
    sa.Column("tenant_id", sa.String(36), nullable=False, index=True),
    sa.Column("customer_id", sa.String(36), nullable=False, index=True),
    sa.Column("description", sa.String(255)),
    sa.Column("amount", sa.Numeric(12, 2), nullable=False),
    sa.Column("due_date", sa.Date, nullable=False),
    sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
    sa.Column("payment_link", sa.Text),
    sa.Column("paid_at", sa.DateTime),
    _created_at(),
)

payments = sa.Table(
    "payments", metadata,
    _id_column(),
    sa.Column("seller_tenant_id", sa.String(36), nullable=False, index=True),
    sa.Column("buyer_tenant_id", sa.String(36), nullable=False),
    sa.Column("amount", sa.Numeric(12, 2), nullable=False),
    sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
    sa.Column("due_date", sa.Date),
    sa.Column("paid_at", sa.DateTime),
    _created_at(),
)

services = sa.Table(
    "services", metadata,
    _id_column(),
    sa.Column("tenant_id", sa.String(36), nullable=False, index=True),
    sa.Column("name", sa.String(255), nullable=False),
    sa.Column("description", sa.Text),
    sa.Column("price", sa.Numeric(12, 2), nullable=False, server_default="0"),
    sa.Column("billing_cycle", sa.String(20), server_default="monthly"),
    sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
)

referral_links = sa.Table(
    "referral_links", metadata,
    _id_column(),
    sa.Column("tenant_id", sa.String(36), nullable=False, index=True),
    sa.Column("customer_id", sa.String(36), nullable=False, index=True),
    sa.Column("code", sa.String(40)),
    sa.Column("balance", sa.Numeric(12, 2), nullable=False, server_default="0"),
    sa.Column("total_referrals", sa.Integer, nullable=False, server_default="0"),
)

expense_categories = sa.Table(
    "expense_categories", metadata,
    _id_column(),
    sa.Column("tenant_id", sa.String(36), nullable=False, index=True),
    sa.Column("name", sa.String(120), nullable=False),
    sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
    _created_at(),
)

expenses = sa.Table(
    "expenses", metadata,
    _id_column(),
    sa.Column("tenant_id", sa.String(36), nullable=False, index=True),
    sa.Column("category_id", sa.String(36)),
    sa.Column("description", sa.String(255), nullable=False),
    sa.Column("amount", sa.Numeric(12, 2), nullable=False),
    sa.Column("due_date", sa.Date, nullable=False),
    sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
    sa.Column("supplier", sa.String(255)),
    sa.Column("notes", sa.Text),
    sa.Column("paid_at", sa.DateTime),
    _created_at(),
    sa.Column("updated_at", sa.DateTime),
)

chatbot_knowledge_base = sa.Table(
    "chatbot_knowledge_base", metadata,
    _id_column(),
    sa.Column("tenant_id", sa.String(36), nullable=False, index=True),
    sa.Column("entry_type", sa.String(20), nullable=False, server_default="faq"),  # faq | document | snippet
    sa.Column("question", sa.Text),
    sa.Column("answer", sa.Text),
    sa.Column("title", sa.String(255)),
    sa.Column("content", sa.Text),
    sa.Column("category", sa.String(120)),
    sa.Column("priority", sa.Integer, nullable=False, server_default="0"),
    sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
)

chatbot_sessions = sa.Table(
    "chatbot_sessions", metadata,
    _id_column(),
    sa.Column("tenant_id", sa.String(36), nullable=False, index=True),
    sa.Column("actor_id", sa.String(36)),
    sa.Column("total_actions", sa.Integer, nullable=False, server_default="0"),
    sa.Column("transferred_to_human", sa.Boolean, nullable=False, server_default=sa.false()),
    sa.Column("rating", sa.Integer),
    sa.Column("last_question", sa.Text),
    sa.Column("last_answer", sa.Text),
    sa.Column("started_at", sa.DateTime, server_default=sa.func.current_timestamp()),
    sa.Column("updated_at", sa.DateTime),
)

chatbot_actions = sa.Table(
    "chatbot_actions", metadata,
    _id_column(),
    sa.Column("session_id", sa.String(36), index=True),
    sa.Column("tenant_id", sa.String(36), nullable=False, index=True),
    sa.Column("actor_id", sa.String(36)),
    sa.Column("action_type", sa.String(60), nullable=False),
    sa.Column("action_data", sa.JSON),
    sa.Column("success", sa.Boolean, nullable=False),
    sa.Column("result_message", sa.Text),
    sa.Column("executed_at", sa.DateTime, nullable=False),
)

pending_directives = sa.Table(
    "pending_directives", metadata,
    _id_column(),
    sa.Column("tenant_id", sa.String(36), nullable=False),
    sa.Column("session_id", sa.String(36), nullable=False),
    sa.Column("actor_id", sa.String(36)),
    sa.Column("endpoint", sa.String(20), nullable=False),
    sa.Column("directive_type", sa.String(60), nullable=False),
    sa.Column("payload", sa.JSON),
    sa.Column("state", sa.String(30), nullable=False),
    sa.Column("created_at", sa.DateTime, nullable=False),
    sa.Column("resolved_at", sa.DateTime),
    sa.Index("ix_pending_directives_session", "tenant_id", "session_id", "state"),
)

support_tickets = sa.Table(
    "support_tickets", metadata,
    _id_column(),
    sa.Column("tenant_id", sa.String(36), nullable=False, index=True),
    sa.Column("customer_id", sa.String(36)),
    sa.Column("session_id", sa.String(36)),
    sa.Column("subject", sa.String(255), nullable=False),
    sa.Column("message", sa.Text),
    sa.Column("status", sa.String(20), nullable=False, server_default="open"),
    _created_at(),
)

event_logs = sa.Table(
    "event_logs", metadata,
    _id_column(),
    sa.Column("tenant_id", sa.String(36), nullable=False, index=True),
    sa.Column("session_id", sa.String(36)),
    sa.Column("event_type", sa.String(60), nullable=False),
    sa.Column("provider", sa.String(30)),
    sa.Column("status", sa.String(20), nullable=False),
    sa.Column("latency_ms", sa.Integer),
    sa.Column("payload", sa.JSON),
    _created_at(),
)
