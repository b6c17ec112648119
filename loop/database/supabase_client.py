from fastapi import Request
from supabase import create_client, Client
from loop.config import Settings


def create_supabase(settings: Settings) -> Client:
    return create_client(settings.supabase_url, settings.supabase_key)


def create_service_supabase(settings: Settings) -> Client:
    """Client with service_role key; bypasses RLS. Use for maintenance jobs."""
    if settings.supabase_service_role_key:
        return create_client(settings.supabase_url, settings.supabase_service_role_key)
    return create_supabase(settings)


def get_supabase(request: Request) -> Client:
    return request.app.state.supabase
