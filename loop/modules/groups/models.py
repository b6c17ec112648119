# Supabase tables: groups, group_members
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

groups:
- id: bigint (primary key, identity)
- name: text (not null)
- group_code: char(4) (not null) - four ASCII digits, '0000'..'9999'
- avatar_url: text (nullable) - storage path in the media bucket
- created_by: uuid (foreign key to auth.users.id, not null)
- max_members: int (not null, default: 6)
- is_active: boolean (not null, default: true)
- created_at: timestamptz (default: now())
- updated_at: timestamptz (default: now())
- unique index groups_active_code on (group_code) where is_active

group_members:
- id: bigint (primary key, identity)
- group_id: bigint (foreign key to groups.id, not null)
- user_id: uuid (foreign key to auth.users.id, not null)
- role: text (not null, default: 'member') - values: admin, member
- is_active: boolean (not null, default: true)
- joined_at: timestamptz (default: now())
- unique index group_members_active on (group_id, user_id) where is_active

Groups are soft-deleted by clearing is_active; membership and media rows
are kept so historical media stays resolvable. A retired group's code may be
reused by a new active group.
"""

GROUPS_TABLE = "groups"
GROUP_MEMBERS_TABLE = "group_members"

ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"
ROLES = (ROLE_ADMIN, ROLE_MEMBER)

JOIN_CODE_LENGTH = 4
JOIN_CODE_SPACE = 10 ** JOIN_CODE_LENGTH
