from __future__ import annotations

from typing import Any, Mapping

from authlink.domain.entities.identity import CanonicalProfile


def _as_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _short_locale(value: Any) -> str | None:
    if isinstance(value, Mapping):
        value = value.get("language")
    if not isinstance(value, str) or not value:
        return None
    return value[:2].lower()


def _join_names(*parts: Any) -> str | None:
    names = [str(part).strip() for part in parts if isinstance(part, str) and part.strip()]
    return " ".join(names) or None


def normalize_github(raw: Mapping[str, Any]) -> CanonicalProfile:
    return CanonicalProfile(
        external_id=_as_str(raw.get("id")),
        display_name=_as_str(raw.get("name")) or _as_str(raw.get("login")),
        avatar_url=_as_str(raw.get("avatar_url")),
        email=_as_str(raw.get("email")),
    )


def normalize_google(raw: Mapping[str, Any]) -> CanonicalProfile:
    return CanonicalProfile(
        external_id=_as_str(raw.get("sub")),
        display_name=_as_str(raw.get("name")),
        avatar_url=_as_str(raw.get("picture")),
        email=_as_str(raw.get("email")),
        email_verified=_as_bool(raw.get("email_verified", False)),
        locale=_short_locale(raw.get("locale")),
    )


def normalize_facebook(raw: Mapping[str, Any]) -> CanonicalProfile:
    picture = raw.get("picture")
    avatar_url = None
    if isinstance(picture, Mapping) and isinstance(picture.get("data"), Mapping):
        avatar_url = _as_str(picture["data"].get("url"))
    return CanonicalProfile(
        external_id=_as_str(raw.get("id")),
        display_name=_as_str(raw.get("name")),
        avatar_url=avatar_url,
        email=_as_str(raw.get("email")),
    )


def normalize_discord(raw: Mapping[str, Any]) -> CanonicalProfile:
    user_id = _as_str(raw.get("id"))
    avatar = _as_str(raw.get("avatar"))
    avatar_url = None
    if user_id and avatar:
        avatar_url = f"https://cdn.discordapp.com/avatars/{user_id}/{avatar}.png"
    return CanonicalProfile(
        external_id=user_id,
        display_name=_as_str(raw.get("global_name")) or _as_str(raw.get("username")),
        avatar_url=avatar_url,
        email=_as_str(raw.get("email")),
        email_verified=_as_bool(raw.get("verified", False)),
        locale=_short_locale(raw.get("locale")),
    )


def normalize_gitlab(raw: Mapping[str, Any]) -> CanonicalProfile:
    return CanonicalProfile(
        external_id=_as_str(raw.get("id")),
        display_name=_as_str(raw.get("name")) or _as_str(raw.get("username")),
        avatar_url=_as_str(raw.get("avatar_url")),
        email=_as_str(raw.get("email")),
        email_verified=raw.get("confirmed_at") is not None,
    )


def normalize_bitbucket(raw: Mapping[str, Any]) -> CanonicalProfile:
    links = raw.get("links")
    avatar_url = None
    if isinstance(links, Mapping) and isinstance(links.get("avatar"), Mapping):
        avatar_url = _as_str(links["avatar"].get("href"))
    return CanonicalProfile(
        external_id=_as_str(raw.get("uuid")) or _as_str(raw.get("account_id")),
        display_name=_as_str(raw.get("display_name")),
        avatar_url=avatar_url,
        email=_as_str(raw.get("email")),
    )


def normalize_linkedin(raw: Mapping[str, Any]) -> CanonicalProfile:
    return CanonicalProfile(
        external_id=_as_str(raw.get("sub")),
        display_name=_as_str(raw.get("name")) or _join_names(raw.get("given_name"), raw.get("family_name")),
        avatar_url=_as_str(raw.get("picture")),
        email=_as_str(raw.get("email")),
        email_verified=_as_bool(raw.get("email_verified", False)),
        locale=_short_locale(raw.get("locale")),
    )


def normalize_spotify(raw: Mapping[str, Any]) -> CanonicalProfile:
    images = raw.get("images")
    avatar_url = None
    if isinstance(images, list) and images and isinstance(images[0], Mapping):
        avatar_url = _as_str(images[0].get("url"))
    return CanonicalProfile(
        external_id=_as_str(raw.get("id")),
        display_name=_as_str(raw.get("display_name")),
        avatar_url=avatar_url,
        email=_as_str(raw.get("email")),
    )


def normalize_twitch(raw: Mapping[str, Any]) -> CanonicalProfile:
    # Helix wraps the user in a one-element "data" list.
    data = raw.get("data")
    user: Mapping[str, Any] = raw
    if isinstance(data, list) and data and isinstance(data[0], Mapping):
        user = data[0]
    return CanonicalProfile(
        external_id=_as_str(user.get("id")),
        display_name=_as_str(user.get("display_name")) or _as_str(user.get("login")),
        avatar_url=_as_str(user.get("profile_image_url")),
        email=_as_str(user.get("email")),
    )


def normalize_strava(raw: Mapping[str, Any]) -> CanonicalProfile:
    return CanonicalProfile(
        external_id=_as_str(raw.get("id")),
        display_name=_join_names(raw.get("firstname"), raw.get("lastname")),
        avatar_url=_as_str(raw.get("profile")),
        email=_as_str(raw.get("email")),
    )


def normalize_azuread(raw: Mapping[str, Any]) -> CanonicalProfile:
    return CanonicalProfile(
        external_id=_as_str(raw.get("oid")) or _as_str(raw.get("sub")),
        display_name=_as_str(raw.get("name")),
        email=_as_str(raw.get("email")) or _as_str(raw.get("preferred_username")),
    )


def normalize_workos(raw: Mapping[str, Any]) -> CanonicalProfile:
    return CanonicalProfile(
        external_id=_as_str(raw.get("id")),
        display_name=_join_names(raw.get("first_name"), raw.get("last_name")),
        email=_as_str(raw.get("email")),
    )


def normalize_apple(raw: Mapping[str, Any]) -> CanonicalProfile:
    # id_token claims. Apple never sends a name or picture there.
    return CanonicalProfile(
        external_id=_as_str(raw.get("sub")),
        email=_as_str(raw.get("email")),
        email_verified=_as_bool(raw.get("email_verified", False)),
    )


def normalize_windowslive(raw: Mapping[str, Any]) -> CanonicalProfile:
    emails = raw.get("emails")
    email = None
    if isinstance(emails, Mapping):
        email = _as_str(emails.get("preferred")) or _as_str(emails.get("account"))
    return CanonicalProfile(
        external_id=_as_str(raw.get("id")),
        display_name=_as_str(raw.get("name")) or _join_names(raw.get("first_name"), raw.get("last_name")),
        email=email,
        locale=_short_locale(raw.get("locale")),
    )
