"""create_transcript_index

Revision ID: 5b1f0c2a9d34
Revises:
Create Date: 2026-01-05 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5b1f0c2a9d34'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EMBEDDING_DIMENSION = 1536

INDEX_STATES = (
    'pending',
    'indexing_videos',
    'extracting_transcripts',
    'processing_chunks',
    'generating_embeddings',
    'completed',
    'failed',
)


def _timestamps() -> list:
    return [
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """
    Create the transcript index schema.

    Creates the following tables:
    1. youtube_channels - Indexed channels
    2. youtube_videos - Channel uploads with transcripts
    3. transcript_chunks - Token-bounded transcript windows with embeddings
    4. video_keywords - Entities extracted from chunks
    5. channel_index_status - Indexing run progress
    6. search_queries - Search analytics

    Also creates IVFFlat cosine indexes on the embedding columns.
    """

    # ================================
    # Enable pgvector extension if not already enabled
    # ================================
    op.execute('CREATE EXTENSION IF NOT EXISTS vector')

    index_state = postgresql.ENUM(*INDEX_STATES, name='index_state', create_type=False)
    index_state.create(op.get_bind(), checkfirst=True)

    # ================================
    # Create youtube_channels table
    # ================================
    op.create_table(
        'youtube_channels',
        *_timestamps(),
        sa.Column('external_channel_id', sa.String(length=100), nullable=False, comment='Channel handle or YouTube channel id'),
        sa.Column('channel_name', sa.String(length=200), nullable=False, comment='Display name'),
        sa.Column('channel_url', sa.Text(), nullable=False, comment='Source URL used for indexing'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('subscriber_count', sa.BigInteger(), nullable=True),
        sa.Column('video_count', sa.Integer(), nullable=True),
        sa.Column('thumbnail_url', sa.Text(), nullable=True),
        sa.Column('is_indexed', sa.Boolean(), nullable=False, server_default='false', comment='True once a full indexing run has completed'),
        sa.Column('last_indexed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_youtube_channels')),
        sa.UniqueConstraint('external_channel_id', name=op.f('uq_youtube_channels_external_channel_id')),
    )

    # ================================
    # Create youtube_videos table
    # ================================
    op.create_table(
        'youtube_videos',
        *_timestamps(),
        sa.Column('external_video_id', sa.String(length=20), nullable=False, comment='YouTube video id (upsert key)'),
        sa.Column('channel_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_seconds', sa.Integer(), nullable=True),
        sa.Column('view_count', sa.BigInteger(), nullable=True),
        sa.Column('like_count', sa.BigInteger(), nullable=True),
        sa.Column('thumbnail_url', sa.Text(), nullable=True),
        sa.Column('video_url', sa.Text(), nullable=False),
        sa.Column('transcript', sa.Text(), nullable=True),
        sa.Column('transcript_length', sa.Integer(), nullable=True),
        sa.Column('transcript_available', sa.Boolean(), nullable=False, server_default='false'),
        sa.ForeignKeyConstraint(['channel_id'], ['youtube_channels.id'], name=op.f('fk_youtube_videos_channel_id_youtube_channels'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_youtube_videos')),
        sa.UniqueConstraint('external_video_id', name=op.f('uq_youtube_videos_external_video_id')),
    )
    op.create_index('ix_youtube_videos_channel_id', 'youtube_videos', ['channel_id'])
    op.create_index('ix_youtube_videos_published_at', 'youtube_videos', ['published_at'])

    # ================================
    # Create transcript_chunks table
    # ================================
    op.create_table(
        'transcript_chunks',
        *_timestamps(),
        sa.Column('video_id', sa.Integer(), nullable=False),
        sa.Column('chunk_index', sa.Integer(), nullable=False, comment='Order of this chunk within the video (0-indexed)'),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('start_time', sa.Integer(), nullable=False, comment='Seconds'),
        sa.Column('end_time', sa.Integer(), nullable=False, comment='Seconds'),
        sa.Column('token_count', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['video_id'], ['youtube_videos.id'], name=op.f('fk_transcript_chunks_video_id_youtube_videos'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_transcript_chunks')),
        sa.UniqueConstraint('video_id', 'chunk_index', name='uq_transcript_chunks_video_chunk_index'),
    )
    op.execute(f'ALTER TABLE transcript_chunks ADD COLUMN embedding vector({EMBEDDING_DIMENSION})')
    op.create_index('ix_transcript_chunks_video_id', 'transcript_chunks', ['video_id'])

    # IVFFlat with cosine distance; lists=100 suits up to ~1M rows
    op.execute("""
        CREATE INDEX ix_transcript_chunks_embedding_ivfflat
        ON transcript_chunks
        USING ivfflat (embedding vector_cosine_ops)
        WITH (lists = 100)
    """)

    # ================================
    # Create video_keywords table
    # ================================
    op.create_table(
        'video_keywords',
        *_timestamps(),
        sa.Column('video_id', sa.Integer(), nullable=False),
        sa.Column('chunk_id', sa.Integer(), nullable=True),
        sa.Column('keyword', sa.String(length=200), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=True),
        sa.Column('confidence', sa.Integer(), nullable=False, comment='0-100'),
        sa.Column('frequency', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('relevance', sa.Integer(), nullable=False, comment='0-100'),
        sa.ForeignKeyConstraint(['video_id'], ['youtube_videos.id'], name=op.f('fk_video_keywords_video_id_youtube_videos'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['chunk_id'], ['transcript_chunks.id'], name=op.f('fk_video_keywords_chunk_id_transcript_chunks'), ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_video_keywords')),
    )
    op.execute(f'ALTER TABLE video_keywords ADD COLUMN embedding vector({EMBEDDING_DIMENSION})')
    op.create_index('ix_video_keywords_video_id', 'video_keywords', ['video_id'])
    op.create_index('ix_video_keywords_chunk_id', 'video_keywords', ['chunk_id'])
    op.create_index('ix_video_keywords_keyword', 'video_keywords', ['keyword'])
    op.execute("""
        CREATE INDEX ix_video_keywords_embedding_ivfflat
        ON video_keywords
        USING ivfflat (embedding vector_cosine_ops)
        WITH (lists = 100)
    """)

    # ================================
    # Create channel_index_status table
    # ================================
    op.create_table(
        'channel_index_status',
        *_timestamps(),
        sa.Column('channel_id', sa.Integer(), nullable=False),
        sa.Column('status', index_state, nullable=False, server_default='pending'),
        sa.Column('progress', sa.Integer(), nullable=False, server_default='0', comment='0-100'),
        sa.Column('total_videos', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('processed_videos', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_chunks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('processed_chunks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['channel_id'], ['youtube_channels.id'], name=op.f('fk_channel_index_status_channel_id_youtube_channels'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_channel_index_status')),
    )
    op.create_index('ix_channel_index_status_channel_id', 'channel_index_status', ['channel_id'])

    # ================================
    # Create search_queries table
    # ================================
    op.create_table(
        'search_queries',
        *_timestamps(),
        sa.Column('channel_id', sa.Integer(), nullable=False),
        sa.Column('query', sa.Text(), nullable=False),
        sa.Column('results_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('execution_time_ms', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['channel_id'], ['youtube_channels.id'], name=op.f('fk_search_queries_channel_id_youtube_channels'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_search_queries')),
    )
    op.execute(f'ALTER TABLE search_queries ADD COLUMN query_embedding vector({EMBEDDING_DIMENSION})')
    op.create_index('ix_search_queries_channel_id', 'search_queries', ['channel_id'])


def downgrade() -> None:
    """Drop the transcript index schema."""

    # Drop tables in reverse order (handle foreign key dependencies)
    op.drop_table('search_queries')
    op.drop_table('channel_index_status')
    op.drop_table('video_keywords')
    op.drop_table('transcript_chunks')
    op.drop_table('youtube_videos')
    op.drop_table('youtube_channels')

    postgresql.ENUM(name='index_state').drop(op.get_bind(), checkfirst=True)

    # Note: We don't drop the vector extension in downgrade
    # because other tables might be using it in production
