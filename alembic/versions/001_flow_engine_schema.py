"""Flow engine schema: users, integrations, automations and their graph.

Startup runs Base.metadata.create_all before migrations, so every table
here is created only when it does not already exist.

Revision ID: 001_flow_engine_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_flow_engine_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _automation_fk():
    return sa.Column(
        "automation_id", sa.Integer(),
        sa.ForeignKey("automations.id", ondelete="CASCADE"), nullable=False, index=True,
    )


def upgrade() -> None:
    existing = set(sa.inspect(op.get_bind()).get_table_names())

    def create(name, *columns, **kw):
        if name in existing:
            print(f"✅ {name} already exists")
            return
        op.create_table(name, *columns, **kw)
        print(f"✅ Created {name}")

    create(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("email", sa.String(), nullable=False, unique=True, index=True),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("plan_tier", sa.String(), nullable=False, server_default="free"),
        sa.Column("encrypted_openai_key", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    create(
        "integrations",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("instagram_id", sa.String(), nullable=False, index=True),
        sa.Column("username", sa.String(), nullable=True),
        sa.Column("encrypted_token", sa.String(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    create(
        "automations",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    create(
        "triggers",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        _automation_fk(),
        sa.Column("type", sa.String(), nullable=False),
        sa.UniqueConstraint("automation_id", "type", name="uq_trigger_automation_type"),
    )
    create(
        "keywords",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        _automation_fk(),
        sa.Column("word", sa.String(), nullable=False),
        sa.UniqueConstraint("automation_id", "word", name="uq_keyword_automation_word"),
    )
    create(
        "automation_posts",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        _automation_fk(),
        sa.Column("media_id", sa.String(), nullable=False, index=True),
        sa.Column("caption", sa.String(), nullable=True),
    )
    create(
        "carousel_templates",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        _automation_fk(),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    create(
        "carousel_elements",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("template_id", sa.Integer(), sa.ForeignKey("carousel_templates.id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("subtitle", sa.String(), nullable=True),
        sa.Column("image_url", sa.String(), nullable=True),
        sa.Column("default_action", sa.String(), nullable=True),
    )
    create(
        "carousel_buttons",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("element_id", sa.Integer(), sa.ForeignKey("carousel_elements.id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("payload", sa.String(), nullable=True),
    )
    create(
        "listeners",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("automation_id", sa.Integer(), sa.ForeignKey("automations.id", ondelete="CASCADE"),
                  nullable=False, unique=True, index=True),
        sa.Column("listener", sa.String(), nullable=False),
        sa.Column("prompt", sa.String(), nullable=True),
        sa.Column("comment_reply", sa.String(), nullable=True),
        sa.Column("carousel_template_id", sa.Integer(),
                  sa.ForeignKey("carousel_templates.id", ondelete="SET NULL"), nullable=True),
    )
    create(
        "flow_nodes",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        _automation_fk(),
        sa.Column("node_id", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("sub_type", sa.String(), nullable=False),
        sa.Column("label", sa.String(), nullable=True),
        sa.Column("config", sa.JSON(), nullable=True),
        sa.Column("position_x", sa.Float(), nullable=True),
        sa.Column("position_y", sa.Float(), nullable=True),
        sa.UniqueConstraint("automation_id", "node_id", name="uq_flow_node_automation_node"),
    )
    create(
        "flow_edges",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        _automation_fk(),
        sa.Column("edge_id", sa.String(), nullable=False),
        sa.Column("source_node_id", sa.String(), nullable=False),
        sa.Column("target_node_id", sa.String(), nullable=False),
        sa.Column("source_handle", sa.String(), nullable=True),
        sa.Column("target_handle", sa.String(), nullable=True),
    )
    create(
        "chat_messages",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        _automation_fk(),
        sa.Column("page_id", sa.String(), nullable=False, index=True),
        sa.Column("sender_id", sa.String(), nullable=False, index=True),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, index=True),
    )
    create(
        "automation_stats",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("automation_id", sa.Integer(), sa.ForeignKey("automations.id", ondelete="CASCADE"),
                  nullable=False, unique=True, index=True),
        sa.Column("dm_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("comment_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_triggered_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    create(
        "analytics_events",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("automation_id", sa.Integer(), sa.ForeignKey("automations.id", ondelete="CASCADE"),
                  nullable=True, index=True),
        sa.Column("media_id", sa.String(), nullable=True, index=True),
        sa.Column(
            "event_type",
            sa.Enum("TRIGGER_MATCHED", "DM_SENT", "COMMENT_REPLIED", "CAROUSEL_SENT", "AI_REPLY_GENERATED",
                    name="eventtype"),
            nullable=False, index=True,
        ),
        sa.Column("event_metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, index=True),
    )


def downgrade() -> None:
    for name in (
        "analytics_events", "automation_stats", "chat_messages", "flow_edges", "flow_nodes",
        "listeners", "carousel_buttons", "carousel_elements", "carousel_templates",
        "automation_posts", "keywords", "triggers", "automations", "integrations", "users",
    ):
        op.drop_table(name)
    sa.Enum(name="eventtype").drop(op.get_bind(), checkfirst=True)
