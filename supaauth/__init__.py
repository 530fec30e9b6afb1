"""SupaAuth: sign-up / sign-in pages backed by Supabase Auth."""

__version__ = "0.1.0"
