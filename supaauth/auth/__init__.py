"""
Authentication helpers for the SupaAuth pages.

Design goals:
- The hosted provider (Supabase GoTrue) owns credentials, tokens and sessions.
- Provider calls are made server-side; failures become user-visible messages.
- Cookie-based session mirror (HttpOnly, signed) for same-origin pages.
"""
