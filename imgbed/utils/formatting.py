import html

from imgbed.db.models import StorageType

_UNITS = ("B", "KB", "MB", "GB")

STORAGE_LABELS = {
    StorageType.OBJECT: "Object storage",
    StorageType.RELAY: "Telegram storage",
}


def format_size(size: int | None) -> str:
    value = float(size or 0)
    unit = 0
    while value >= 1024 and unit < len(_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{value:.2f} {_UNITS[unit]}"


def render_panel(
    storage_type: StorageType,
    category_name: str | None,
    custom_suffix: str | None,
    max_size_mb: int,
) -> str:
    category = html.escape(category_name) if category_name else "Default"
    suffix = html.escape(custom_suffix) if custom_suffix else "auto (timestamp)"
    return (
        "\U0001f4f2 <b>Image host</b>\n\n"
        "\U0001f4e1 <b>Status</b>\n"
        f"\U0001f539 Storage: {STORAGE_LABELS[storage_type]}\n"
        f"\U0001f539 Category: {category}\n"
        f"\U0001f539 File name: {suffix}\n"
        f"\U0001f539 Size limit: {max_size_mb}MB\n\n"
        "➡️ Send a picture or a file and you will get a direct link back."
    )


def render_stats(stats: dict) -> str:
    return (
        "\U0001f4ca <b>Your usage</b>\n"
        f"\U0001f4c1 Files: {stats.get('total_files') or 0}\n"
        f"\U0001f4be Stored: {format_size(stats.get('total_size'))}\n"
        f"\U0001f4cb Categories used: {stats.get('total_categories') or 0}"
    )
