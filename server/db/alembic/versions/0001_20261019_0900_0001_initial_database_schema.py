"""Initial database schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps(on_update: bool = True) -> list[sa.Column]:
    columns = [sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False)]
    if on_update:
        columns.append(sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False))
    return columns


def upgrade() -> None:
    """Upgrade database schema."""
    # Reference data
    op.create_table('countries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('iso2', sa.String(length=2), nullable=False),
        sa.Column('iso3', sa.String(length=3), nullable=True),
        sa.Column('name_en', sa.String(length=255), nullable=False),
        sa.Column('name_th', sa.String(length=255), nullable=True),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('region', sa.String(length=100), nullable=True),
        sa.Column('flag_emoji', sa.String(length=16), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('iso2'),
        sa.UniqueConstraint('iso3'),
        sa.UniqueConstraint('slug')
    )
    op.create_index(op.f('ix_countries_name_en'), 'countries', ['name_en'], unique=False)

    op.create_table('cities',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('country_id', sa.Integer(), nullable=True),
        sa.Column('name_en', sa.String(length=255), nullable=False),
        sa.Column('name_th', sa.String(length=255), nullable=True),
        sa.Column('slug', sa.String(length=255), nullable=True),
        sa.Column('is_popular', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['country_id'], ['countries.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_cities_country_id'), 'cities', ['country_id'], unique=False)
    op.create_index(op.f('ix_cities_name_en'), 'cities', ['name_en'], unique=False)

    op.create_table('transports',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('code', sa.String(length=10), nullable=True),
        sa.Column('code1', sa.String(length=10), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_transports_code'), 'transports', ['code'], unique=False)

    op.create_table('settings',
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('value', sa.JSON(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('key')
    )

    op.create_table('cache_locks',
        sa.Column('key', sa.String(length=255), nullable=False),
        sa.Column('owner', sa.String(length=64), nullable=False),
        sa.Column('expiration', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('key')
    )
    op.create_index(op.f('ix_cache_locks_expiration'), 'cache_locks', ['expiration'], unique=False)

    # Wholesalers
    op.create_table('wholesalers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code')
    )
    op.create_index(op.f('ix_wholesalers_code'), 'wholesalers', ['code'], unique=False)

    op.create_table('wholesaler_api_configs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('wholesaler_id', sa.Integer(), nullable=False),
        sa.Column('api_base_url', sa.String(length=500), nullable=False),
        sa.Column('api_format', sa.String(length=20), nullable=False),
        sa.Column('auth_type', sa.String(length=20), nullable=False),
        sa.Column('auth_credentials', sa.JSON(), nullable=False),
        sa.Column('auth_header_name', sa.String(length=100), nullable=True),
        sa.Column('rate_limit_per_minute', sa.Integer(), nullable=False),
        sa.Column('connect_timeout_seconds', sa.Integer(), nullable=False),
        sa.Column('request_timeout_seconds', sa.Integer(), nullable=False),
        sa.Column('retry_attempts', sa.Integer(), nullable=False),
        sa.Column('sync_enabled', sa.Boolean(), nullable=False),
        sa.Column('sync_method', sa.String(length=20), nullable=False),
        sa.Column('sync_mode', sa.String(length=20), nullable=False),
        sa.Column('sync_interval_minutes', sa.Integer(), nullable=False),
        sa.Column('sync_limit', sa.Integer(), nullable=True),
        sa.Column('aggregation_config', sa.JSON(), nullable=False),
        sa.Column('past_period_handling', sa.String(length=10), nullable=False),
        sa.Column('past_period_threshold_days', sa.Integer(), nullable=False),
        sa.Column('last_health_check_at', sa.DateTime(), nullable=True),
        sa.Column('last_health_check_status', sa.Boolean(), nullable=True),
        sa.Column('last_sync_at', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('retry_attempts >= 1', name='ck_api_config_retry_attempts_positive'),
        sa.CheckConstraint('rate_limit_per_minute > 0', name='ck_api_config_rate_limit_positive'),
        sa.CheckConstraint(
            'past_period_threshold_days >= 0 AND past_period_threshold_days <= 365',
            name='ck_api_config_past_threshold_range'
        ),
        sa.ForeignKeyConstraint(['wholesaler_id'], ['wholesalers.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('wholesaler_id')
    )
    op.create_index(op.f('ix_wholesaler_api_configs_wholesaler_id'), 'wholesaler_api_configs', ['wholesaler_id'], unique=False)

    op.create_table('wholesaler_field_mappings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('wholesaler_id', sa.Integer(), nullable=False),
        sa.Column('section_name', sa.String(length=20), nullable=False),
        sa.Column('our_field', sa.String(length=100), nullable=False),
        sa.Column('their_field', sa.String(length=255), nullable=True),
        sa.Column('their_field_path', sa.String(length=500), nullable=True),
        sa.Column('transform_type', sa.String(length=20), nullable=False),
        sa.Column('transform_config', sa.JSON(), nullable=True),
        sa.Column('default_value', sa.String(length=500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['wholesaler_id'], ['wholesalers.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('wholesaler_id', 'section_name', 'our_field', name='uq_field_mapping_target')
    )
    op.create_index(op.f('ix_wholesaler_field_mappings_wholesaler_id'), 'wholesaler_field_mappings', ['wholesaler_id'], unique=False)

    op.create_table('section_definitions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('section_name', sa.String(length=20), nullable=False),
        sa.Column('field_name', sa.String(length=100), nullable=False),
        sa.Column('data_type', sa.String(length=20), nullable=False),
        sa.Column('is_required', sa.Boolean(), nullable=False),
        sa.Column('enum_values', sa.JSON(), nullable=True),
        sa.Column('default_value', sa.String(length=500), nullable=True),
        sa.Column('lookup_table', sa.String(length=50), nullable=True),
        sa.Column('lookup_match_fields', sa.JSON(), nullable=True),
        sa.Column('lookup_return_field', sa.String(length=50), nullable=False),
        sa.Column('lookup_create_if_not_found', sa.Boolean(), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('section_name', 'field_name', name='uq_section_definition_field')
    )
    op.create_index(op.f('ix_section_definitions_section_name'), 'section_definitions', ['section_name'], unique=False)

    # Catalogue
    op.create_table('tours',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('wholesaler_id', sa.Integer(), nullable=True),
        sa.Column('tour_code', sa.String(length=50), nullable=False),
        sa.Column('wholesaler_tour_code', sa.String(length=100), nullable=True),
        sa.Column('external_id', sa.String(length=100), nullable=True),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('slug', sa.String(length=500), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('short_description', sa.Text(), nullable=True),
        sa.Column('highlights', sa.JSON(), nullable=True),
        sa.Column('shopping_highlights', sa.JSON(), nullable=True),
        sa.Column('food_highlights', sa.JSON(), nullable=True),
        sa.Column('themes', sa.JSON(), nullable=True),
        sa.Column('suitable_for', sa.JSON(), nullable=True),
        sa.Column('primary_country_id', sa.Integer(), nullable=True),
        sa.Column('transport_id', sa.Integer(), nullable=True),
        sa.Column('duration_days', sa.Integer(), nullable=True),
        sa.Column('duration_nights', sa.Integer(), nullable=True),
        sa.Column('cover_image_url', sa.String(length=1000), nullable=True),
        sa.Column('cover_image_alt', sa.String(length=500), nullable=True),
        sa.Column('pdf_url', sa.String(length=1000), nullable=True),
        sa.Column('gallery', sa.JSON(), nullable=True),
        sa.Column('meta_title', sa.String(length=500), nullable=True),
        sa.Column('meta_description', sa.Text(), nullable=True),
        sa.Column('keywords', sa.JSON(), nullable=True),
        sa.Column('hashtags', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('data_source', sa.String(length=10), nullable=False),
        sa.Column('sync_locked', sa.Boolean(), nullable=False),
        sa.Column('sync_status', sa.String(length=20), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        sa.Column('price_adult', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('discount_adult', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('min_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('max_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('display_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('discount_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('has_promotion', sa.Boolean(), nullable=False),
        sa.Column('max_discount_percent', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('promotion_type', sa.String(length=20), nullable=False),
        sa.Column('hotel_star', sa.Integer(), nullable=True),
        sa.Column('hotel_star_min', sa.Integer(), nullable=True),
        sa.Column('hotel_star_max', sa.Integer(), nullable=True),
        sa.Column('next_departure_date', sa.Date(), nullable=True),
        sa.Column('total_departures', sa.Integer(), nullable=False),
        sa.Column('available_seats', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('total_departures >= 0', name='ck_tour_total_departures_non_negative'),
        sa.CheckConstraint('available_seats >= 0', name='ck_tour_available_seats_non_negative'),
        sa.ForeignKeyConstraint(['wholesaler_id'], ['wholesalers.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['primary_country_id'], ['countries.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['transport_id'], ['transports.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tour_code')
    )
    op.create_index(op.f('ix_tours_wholesaler_id'), 'tours', ['wholesaler_id'], unique=False)
    op.create_index(op.f('ix_tours_tour_code'), 'tours', ['tour_code'], unique=False)
    op.create_index(op.f('ix_tours_wholesaler_tour_code'), 'tours', ['wholesaler_tour_code'], unique=False)
    op.create_index(op.f('ix_tours_external_id'), 'tours', ['external_id'], unique=False)
    op.create_index(op.f('ix_tours_primary_country_id'), 'tours', ['primary_country_id'], unique=False)
    op.create_index(op.f('ix_tours_status'), 'tours', ['status'], unique=False)

    op.create_table('tour_itineraries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tour_id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.String(length=100), nullable=True),
        sa.Column('day_number', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('places', sa.JSON(), nullable=True),
        sa.Column('hotel_name', sa.String(length=255), nullable=True),
        sa.Column('hotel_star', sa.Integer(), nullable=True),
        sa.Column('has_breakfast', sa.Boolean(), nullable=False),
        sa.Column('has_lunch', sa.Boolean(), nullable=False),
        sa.Column('has_dinner', sa.Boolean(), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.Column('data_source', sa.String(length=10), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('day_number >= 1', name='ck_itinerary_day_number_positive'),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tour_itineraries_tour_id'), 'tour_itineraries', ['tour_id'], unique=False)

    op.create_table('periods',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tour_id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.String(length=100), nullable=True),
        sa.Column('period_code', sa.String(length=100), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('booked', sa.Integer(), nullable=False),
        sa.Column('available', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('is_visible', sa.Boolean(), nullable=False),
        sa.Column('sale_status', sa.String(length=20), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('capacity >= 0', name='ck_period_capacity_non_negative'),
        sa.CheckConstraint('booked >= 0', name='ck_period_booked_non_negative'),
        sa.CheckConstraint('available >= 0', name='ck_period_available_non_negative'),
        sa.CheckConstraint('end_date >= start_date', name='ck_period_end_after_start'),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_periods_tour_id'), 'periods', ['tour_id'], unique=False)
    op.create_index(op.f('ix_periods_external_id'), 'periods', ['external_id'], unique=False)
    op.create_index(op.f('ix_periods_start_date'), 'periods', ['start_date'], unique=False)
    op.create_index(op.f('ix_periods_status'), 'periods', ['status'], unique=False)

    op.create_table('offers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('period_id', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        *[
            sa.Column(name, sa.Numeric(precision=12, scale=2), nullable=True)
            for name in (
                'price_adult', 'discount_adult', 'price_child', 'discount_child_bed',
                'price_child_nobed', 'discount_child_nobed', 'price_infant', 'price_joinland',
                'price_single', 'discount_single', 'deposit',
            )
        ],
        *_timestamps(),
        sa.CheckConstraint('length(currency) = 3', name='ck_offer_currency_length'),
        sa.ForeignKeyConstraint(['period_id'], ['periods.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('period_id')
    )
    op.create_index(op.f('ix_offers_period_id'), 'offers', ['period_id'], unique=False)

    # Sync bookkeeping
    op.create_table('sync_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('sync_id', sa.String(length=64), nullable=False),
        sa.Column('wholesaler_id', sa.Integer(), nullable=False),
        sa.Column('sync_type', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('duration_seconds', sa.Float(), nullable=True),
        *[
            sa.Column(name, sa.Integer(), nullable=False)
            for name in (
                'tours_received', 'tours_created', 'tours_updated', 'tours_skipped', 'tours_failed',
                'periods_received', 'periods_created', 'periods_updated', 'error_count',
            )
        ],
        sa.Column('error_summary', sa.JSON(), nullable=True),
        sa.Column('last_heartbeat_at', sa.DateTime(), nullable=True),
        sa.Column('heartbeat_timeout_minutes', sa.Integer(), nullable=False),
        sa.Column('total_items', sa.Integer(), nullable=False),
        sa.Column('processed_items', sa.Integer(), nullable=False),
        sa.Column('progress_percent', sa.Integer(), nullable=False),
        sa.Column('current_item_code', sa.String(length=100), nullable=True),
        sa.Column('chunk_size', sa.Integer(), nullable=False),
        sa.Column('current_chunk', sa.Integer(), nullable=False),
        sa.Column('total_chunks', sa.Integer(), nullable=False),
        sa.Column('api_calls_count', sa.Integer(), nullable=False),
        sa.Column('cancel_requested', sa.Boolean(), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancel_reason', sa.String(length=500), nullable=True),
        *_timestamps(on_update=False),
        sa.CheckConstraint(
            'progress_percent >= 0 AND progress_percent <= 100',
            name='ck_sync_log_progress_range'
        ),
        sa.ForeignKeyConstraint(['wholesaler_id'], ['wholesalers.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sync_id')
    )
    op.create_index(op.f('ix_sync_logs_sync_id'), 'sync_logs', ['sync_id'], unique=False)
    op.create_index(op.f('ix_sync_logs_wholesaler_id'), 'sync_logs', ['wholesaler_id'], unique=False)
    op.create_index(op.f('ix_sync_logs_status'), 'sync_logs', ['status'], unique=False)

    op.create_table('sync_error_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('sync_log_id', sa.Integer(), nullable=False),
        sa.Column('wholesaler_id', sa.Integer(), nullable=False),
        sa.Column('entity_type', sa.String(length=20), nullable=False),
        sa.Column('entity_code', sa.String(length=100), nullable=True),
        sa.Column('error_type', sa.String(length=20), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=False),
        sa.Column('field_name', sa.String(length=100), nullable=True),
        sa.Column('raw_data', sa.JSON(), nullable=True),
        sa.Column('stack_trace', sa.Text(), nullable=True),
        sa.Column('is_retryable', sa.Boolean(), nullable=False),
        *_timestamps(on_update=False),
        sa.ForeignKeyConstraint(['sync_log_id'], ['sync_logs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sync_error_logs_sync_log_id'), 'sync_error_logs', ['sync_log_id'], unique=False)
    op.create_index(op.f('ix_sync_error_logs_wholesaler_id'), 'sync_error_logs', ['wholesaler_id'], unique=False)

    op.create_table('sync_cursors',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('wholesaler_id', sa.Integer(), nullable=False),
        sa.Column('sync_type', sa.String(length=20), nullable=False),
        sa.Column('cursor_value', sa.String(length=500), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        sa.Column('total_received', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['wholesaler_id'], ['wholesalers.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('wholesaler_id', 'sync_type', name='uq_sync_cursor_wholesaler_type')
    )

    op.create_table('sync_jobs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('wholesaler_id', sa.Integer(), nullable=False),
        sa.Column('sync_type', sa.String(length=20), nullable=False),
        sa.Column('limit', sa.Integer(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('available_at', sa.DateTime(), nullable=False),
        sa.Column('reserved_at', sa.DateTime(), nullable=True),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('sync_log_id', sa.Integer(), nullable=True),
        *_timestamps(on_update=False),
        sa.ForeignKeyConstraint(['wholesaler_id'], ['wholesalers.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['sync_log_id'], ['sync_logs.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sync_jobs_wholesaler_id'), 'sync_jobs', ['wholesaler_id'], unique=False)
    op.create_index(op.f('ix_sync_jobs_status'), 'sync_jobs', ['status'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('sync_jobs')
    op.drop_table('sync_cursors')
    op.drop_table('sync_error_logs')
    op.drop_table('sync_logs')
    op.drop_table('offers')
    op.drop_table('periods')
    op.drop_table('tour_itineraries')
    op.drop_table('tours')
    op.drop_table('section_definitions')
    op.drop_table('wholesaler_field_mappings')
    op.drop_table('wholesaler_api_configs')
    op.drop_table('wholesalers')
    op.drop_table('cache_locks')
    op.drop_table('settings')
    op.drop_table('transports')
    op.drop_table('cities')
    op.drop_table('countries')
