"""create memory graph tables

Revision ID: 4f1c2a9d7e10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4f1c2a9d7e10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'memory_entities',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False,
                  comment='Type: person, place, event, time period, emotion'),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('name_key', sa.String(length=255), nullable=False,
                  comment='Case-folded normalized name used for deduplication'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('mention_count', sa.Integer(), server_default='1', nullable=False),
        sa.Column('first_mentioned_chapter', sa.String(length=255), nullable=True),
        sa.Column('first_mentioned_question', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'entity_type', 'name_key', name='uq_memory_entity_user_type_name'),
        comment='Per-user knowledge graph nodes'
    )
    op.create_index('idx_memory_entities_user_type', 'memory_entities', ['user_id', 'entity_type'])
    op.create_index('idx_memory_entities_user_mentions', 'memory_entities', ['user_id', 'mention_count'])

    op.create_table(
        'memory_mentions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('entity_id', sa.UUID(), nullable=False),
        sa.Column('story_id', sa.String(length=255), nullable=True),
        sa.Column('chapter_id', sa.String(length=255), nullable=True),
        sa.Column('question_id', sa.String(length=255), nullable=True),
        sa.Column('context', sa.Text(), nullable=True),
        sa.Column('sentiment', sa.String(length=20), server_default='neutral', nullable=False,
                  comment='positive, negative, neutral or mixed'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.ForeignKeyConstraint(['entity_id'], ['memory_entities.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        comment='Occurrences of entities in saved answers'
    )
    op.create_index('idx_memory_mentions_entity', 'memory_mentions', ['entity_id', 'created_at'])
    op.create_index('idx_memory_mentions_story', 'memory_mentions', ['story_id'])

    op.create_table(
        'memory_relationships',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('entity1_id', sa.UUID(), nullable=False),
        sa.Column('entity2_id', sa.UUID(), nullable=False),
        sa.Column('relationship_type', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.ForeignKeyConstraint(['entity1_id'], ['memory_entities.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['entity2_id'], ['memory_entities.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('entity1_id', 'entity2_id', 'relationship_type', name='uq_memory_relationship_edge'),
        comment='Directed edges between entities of the same user'
    )
    op.create_index('idx_memory_relationships_entity1', 'memory_relationships', ['entity1_id'])
    op.create_index('idx_memory_relationships_entity2', 'memory_relationships', ['entity2_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('idx_memory_relationships_entity2', table_name='memory_relationships')
    op.drop_index('idx_memory_relationships_entity1', table_name='memory_relationships')
    op.drop_table('memory_relationships')
    op.drop_index('idx_memory_mentions_story', table_name='memory_mentions')
    op.drop_index('idx_memory_mentions_entity', table_name='memory_mentions')
    op.drop_table('memory_mentions')
    op.drop_index('idx_memory_entities_user_mentions', table_name='memory_entities')
    op.drop_index('idx_memory_entities_user_type', table_name='memory_entities')
    op.drop_table('memory_entities')
