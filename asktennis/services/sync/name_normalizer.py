"""Name normalization utilities for player and tournament matching.

Handles common variations between the provider feed, historical imports
and user-typed queries:
- Provider ordering: "Djokovic, Novak" → "Novak Djokovic"
- Suffixes: "Jr.", "Sr.", "III", "II"
- Punctuation: "Auger-Aliassime" and "Auger Aliassime" compare equal
- Accents: "Novak Đoković" → "novak dokovic"
- Case and extra spaces
"""
import re
import unicodedata


# Common name suffixes that should be removed for comparison
SUFFIXES = {'jr', 'sr', 'ii', 'iii', 'iv'}

# Letters NFD decomposition does not split into base + combining mark
_LATIN_FOLDS = str.maketrans({
    'đ': 'd', 'Đ': 'D',
    'ø': 'o', 'Ø': 'O',
    'ł': 'l', 'Ł': 'L',
    'ß': 'ss',
})


def normalize(name: str) -> str:
    """
    Normalize a name for comparison and cache keys.

    Steps:
    1. Reorder "Last, First" into "First Last"
    2. Remove a trailing suffix (Jr, Sr, III, ...)
    3. Strip accents
    4. Lowercase
    5. Turn punctuation into spaces and collapse whitespace

    Examples:
        >>> normalize("Djokovic, Novak")
        'novak djokovic'
        >>> normalize("Félix Auger-Aliassime")
        'felix auger aliassime'
        >>> normalize("  ROGER   federer ")
        'roger federer'
    """
    if not name:
        return ""

    name = display_name(name)
    name = _remove_suffix(name)
    name = _strip_accents(name)
    name = name.lower()
    name = re.sub(r"[^\w\s]", " ", name)
    return ' '.join(name.split())


def display_name(name: str) -> str:
    """
    Convert provider "Last, First" names to "First Last".

    Names without a comma are returned trimmed and whitespace-collapsed.

    Examples:
        >>> display_name("Federer, Roger")
        'Roger Federer'
        >>> display_name("Roger Federer")
        'Roger Federer'
    """
    if not name:
        return ""

    if ',' in name:
        last, _, first = name.partition(',')
        if first.strip() and last.strip():
            name = f"{first} {last}"

    return ' '.join(name.split())


def normalize_tournament(name: str) -> str:
    """Lowercase, accent-free tournament name used for substring matching."""
    if not name:
        return ""
    return ' '.join(_strip_accents(name).lower().split())


def _remove_suffix(name: str) -> str:
    parts = name.split()
    if len(parts) > 1 and parts[-1].lower().replace('.', '') in SUFFIXES:
        return ' '.join(parts[:-1])
    return name


def _strip_accents(name: str) -> str:
    decomposed = unicodedata.normalize('NFD', name.translate(_LATIN_FOLDS))
    return ''.join(c for c in decomposed if unicodedata.category(c) != 'Mn')
