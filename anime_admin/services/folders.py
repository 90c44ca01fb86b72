"""Folder name helpers shared by the matcher and the library scanner."""

import re

from .titles import clean_title

# Folder names that describe a section of a series rather than the series itself
GENERIC_FOLDER_NAMES = {"specials", "ova", "ona", "extras", "nc"}

_BRACKETED = re.compile(r"\[[^\]]*\]?")


def is_generic_media_folder(name: str) -> bool:
    """True for 'Season 1', 'S01', 'Specials', 'OVA', 'NC' and similar folders."""
    lower = name.strip().lower()
    if lower.startswith("season"):
        return True
    if len(lower) > 1 and lower[0] == "s" and lower[1].isdigit():
        return True
    return lower in GENERIC_FOLDER_NAMES


def is_hidden(name: str) -> bool:
    return name.startswith(".")


def clean_folder_name(name: str) -> str:
    """Clean a folder name like a release title, dropping '[Group]' style tags."""
    clean = clean_title(name)
    if clean.startswith("[") or "] " in clean or " [" in clean:
        stripped = clean_title(_BRACKETED.sub("", clean).replace("]", ""))
        if stripped:
            return stripped
    return clean
