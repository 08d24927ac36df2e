"""Confusable character table used for homoglyph normalization.

Every value is plain ASCII and no value appears as a key, so applying the
table twice gives the same result as applying it once.
"""

from __future__ import annotations

CYRILLIC = {
    "а": "a",
    "е": "e",
    "о": "o",
    "р": "p",
    "с": "c",
    "у": "y",
    "х": "x",
    "і": "i",  # і (Ukrainian)
    "ј": "j",  # ј (Serbian)
    "һ": "h",
    "ѕ": "s",
    "є": "e",
    "ї": "i",
    "ґ": "g",
    "ь": "b",
    "к": "k",
    "м": "m",
    "т": "t",
    "н": "h",
    "ԁ": "d",
    "В": "B",
    "Н": "H",
    "А": "A",
    "Е": "E",
    "О": "O",
    "Р": "P",
    "С": "C",
    "Т": "T",
    "Х": "X",
    "М": "M",
    "К": "K",
}

GREEK = {
    "ο": "o",
    "α": "a",
    "ε": "e",
    "ι": "i",
    "κ": "k",
    "ν": "v",
    "ρ": "p",
    "τ": "t",
    "υ": "u",
    "ω": "w",
    "Α": "A",
    "Β": "B",
    "Ε": "E",
    "Ζ": "Z",
    "Η": "H",
    "Ι": "I",
    "Κ": "K",
    "Μ": "M",
    "Ν": "N",
    "Ο": "O",
    "Ρ": "P",
    "Τ": "T",
    "Υ": "Y",
    "Χ": "X",
}

ARMENIAN = {
    "ո": "n",
    "ս": "u",
}

DIGIT_LOOKALIKES = {
    "0": "o",
    "1": "l",
    "!": "l",
    "|": "l",
}

LATIN_EXTENDED = {
    "ı": "i",  # ı (dotless)
    "ɡ": "g",  # ɡ (script g)
    "ẚ": "a",
    "à": "a",
    "á": "a",
    "â": "a",
    "ã": "a",
    "ä": "a",
    "å": "a",
    "è": "e",
    "é": "e",
    "ê": "e",
    "ë": "e",
    "ì": "i",
    "í": "i",
    "î": "i",
    "ï": "i",
    "ò": "o",
    "ó": "o",
    "ô": "o",
    "õ": "o",
    "ö": "o",
    "ù": "u",
    "ú": "u",
    "û": "u",
    "ü": "u",
}

# Fullwidth Latin small letters U+FF41..U+FF5A map to a..z.
FULLWIDTH = {chr(0xFF41 + offset): chr(ord("a") + offset) for offset in range(26)}

HOMOGLYPHS: dict[str, str] = {
    **CYRILLIC,
    **GREEK,
    **ARMENIAN,
    **DIGIT_LOOKALIKES,
    **LATIN_EXTENDED,
    **FULLWIDTH,
}

HOMOGLYPH_TRANSLATION = str.maketrans(HOMOGLYPHS)
