"""Pool play schema: tournaments, divisions with generation locks, teams, matches, seeds, pool results, refresh outbox

Revision ID: 001_poolplay
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_poolplay"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tournament",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    lock_columns = []
    for family in ("schedule", "bracket"):
        lock_columns.extend(
            [
                sa.Column(f"{family}_status", sa.String(), nullable=False, server_default="idle"),
                sa.Column(f"{family}_status_changed_at", sa.DateTime(), nullable=True),
                sa.Column(f"{family}_version", sa.Integer(), nullable=False, server_default="0"),
                sa.Column(f"{family}_generated_by", sa.String(), nullable=True),
            ]
        )

    op.create_table(
        "division",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("pool_size", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("advancement_rule", sa.String(), nullable=False, server_default="top_2"),
        sa.Column("advancement_count", sa.Integer(), nullable=True),
        sa.Column("bronze_match", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("tiebreakers", sa.JSON(), nullable=True),
        sa.Column("plate_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("plate_third_place", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("plate_name", sa.String(), nullable=True),
        sa.Column("advance_to_plate_per_pool", sa.Integer(), nullable=True),
        sa.Column("game_settings", sa.JSON(), nullable=True),
        sa.Column("medal_round_settings", sa.JSON(), nullable=True),
        sa.Column("plate_round_settings", sa.JSON(), nullable=True),
        sa.Column("pool_assignments", sa.JSON(), nullable=True),
        *lock_columns,
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
    )
    op.create_index("ix_division_tournament_id", "division", ["tournament_id"])

    op.create_table(
        "team",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("division_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("player_ids", sa.JSON(), nullable=False),
        sa.Column("seed", sa.Integer(), nullable=True),
        sa.Column("rating", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["division_id"], ["division.id"]),
    )
    op.create_index("ix_team_division_id", "team", ["division_id"])

    op.create_table(
        "match",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("division_id", sa.Integer(), nullable=False),
        sa.Column("stage", sa.String(), nullable=False),
        sa.Column("bracket_type", sa.String(), nullable=True),
        sa.Column("pool_name", sa.String(), nullable=True),
        sa.Column("pool_key", sa.String(), nullable=True),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("round_name", sa.String(), nullable=True),
        sa.Column("match_number", sa.Integer(), nullable=False),
        sa.Column("bracket_position", sa.Integer(), nullable=True),
        sa.Column("team_a_id", sa.Integer(), nullable=True),
        sa.Column("team_a_name", sa.String(), nullable=False),
        sa.Column("team_a_player_ids", sa.JSON(), nullable=False),
        sa.Column("team_b_id", sa.Integer(), nullable=True),
        sa.Column("team_b_name", sa.String(), nullable=False),
        sa.Column("team_b_player_ids", sa.JSON(), nullable=False),
        sa.Column("next_match_id", sa.String(), nullable=True),
        sa.Column("next_match_slot", sa.String(), nullable=True),
        sa.Column("loser_next_match_id", sa.String(), nullable=True),
        sa.Column("loser_next_match_slot", sa.String(), nullable=True),
        sa.Column("is_bye", sa.Boolean(), nullable=False),
        sa.Column("is_third_place", sa.Boolean(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("winner_team_id", sa.Integer(), nullable=True),
        sa.Column("proposed_result", sa.JSON(), nullable=True),
        sa.Column("official_result", sa.JSON(), nullable=True),
        sa.Column("game_settings", sa.JSON(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.ForeignKeyConstraint(["division_id"], ["division.id"]),
        sa.ForeignKeyConstraint(["team_a_id"], ["team.id"]),
        sa.ForeignKeyConstraint(["team_b_id"], ["team.id"]),
    )
    op.create_index("ix_match_division_id", "match", ["division_id"])
    op.create_index("ix_match_pool_key", "match", ["pool_key"])
    op.create_index("ix_match_updated_at", "match", ["updated_at"])

    op.create_table(
        "poolresult",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("division_id", sa.Integer(), nullable=False),
        sa.Column("pool_key", sa.String(), nullable=False),
        sa.Column("pool_name", sa.String(), nullable=False),
        sa.Column("rows", sa.JSON(), nullable=False),
        sa.Column("matches_updated_at_max", sa.DateTime(), nullable=True),
        sa.Column("calculation_version", sa.Integer(), nullable=False),
        sa.Column("calculated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["division_id"], ["division.id"]),
    )
    op.create_index("ix_poolresult_division_id", "poolresult", ["division_id"])

    op.create_table(
        "bracketseeds",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("division_id", sa.Integer(), nullable=False),
        sa.Column("bracket_type", sa.String(), nullable=False),
        sa.Column("qualifiers_per_pool", sa.Integer(), nullable=False),
        sa.Column("pool_count", sa.Integer(), nullable=False),
        sa.Column("method", sa.String(), nullable=False),
        sa.Column("bracket_size", sa.Integer(), nullable=False),
        sa.Column("rounds", sa.Integer(), nullable=False),
        sa.Column("round1_match_count", sa.Integer(), nullable=False),
        sa.Column("third_place_match", sa.Boolean(), nullable=False),
        sa.Column("slots", sa.JSON(), nullable=False),
        sa.Column("round1_pairs", sa.JSON(), nullable=False),
        sa.Column("generated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["division_id"], ["division.id"]),
    )
    op.create_index("ix_bracketseeds_division_id", "bracketseeds", ["division_id"])

    op.create_table(
        "standingsrefresh",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("division_id", sa.Integer(), nullable=False),
        sa.Column("pool_key", sa.String(), nullable=False),
        sa.Column("trigger_match_id", sa.String(), nullable=True),
        sa.Column("requested_at", sa.DateTime(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.String(), nullable=True),
        sa.Column("last_attempt_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["division_id"], ["division.id"]),
        sa.UniqueConstraint("division_id", "pool_key", name="uq_standings_refresh_pool"),
    )
    op.create_index("ix_standingsrefresh_division_id", "standingsrefresh", ["division_id"])


def downgrade() -> None:
    op.drop_table("standingsrefresh")
    op.drop_table("bracketseeds")
    op.drop_table("poolresult")
    op.drop_table("match")
    op.drop_table("team")
    op.drop_table("division")
    op.drop_table("tournament")
