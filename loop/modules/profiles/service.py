from supabase import Client
from loop.core.store import execute
from loop.modules.profiles.schemas import ProfileResponse
from typing import Dict, List


class ProfileService:
    """Read-only access to the `profiles` table for roster display."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_profiles(self, user_ids: List[str]) -> Dict[str, ProfileResponse]:
        if not user_ids:
            return {}
        rows = execute(
            self.supabase.table("profiles")
                .select("id, username, first_name, last_name, avatar_url, profile_bio, created_at")
                .in_("id", list(set(user_ids))),
            "load profiles",
        )
        return {str(row["id"]): ProfileResponse(**row) for row in rows}
