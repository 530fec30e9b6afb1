from __future__ import annotations

from typing import Any, Dict, Mapping

from supaauth.auth.models import AuthPayload

# Initial values for the sign-up / sign-in form fields.
FORM_VALUES: Dict[str, str] = {
    "email": "",
    "password": "",
}


class FormError(ValueError):
    """Submitted form is missing required fields."""


def form_values(form: Mapping[str, Any]) -> Dict[str, str]:
    """Merge submitted fields over FORM_VALUES (unknown fields are ignored)."""
    values = dict(FORM_VALUES)
    for name in FORM_VALUES:
        v = form.get(name)
        if isinstance(v, str):
            values[name] = v
    return values


def parse_auth_form(form: Mapping[str, Any]) -> AuthPayload:
    """
    Build the credential pair from posted form data.

    Values are passed through exactly as typed; the provider owns validation.
    """
    values = form_values(form)
    if not values["email"] or not values["password"]:
        raise FormError("Please provide your email and password")
    return AuthPayload(email=values["email"], password=values["password"])
