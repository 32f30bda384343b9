import re

# Unit Pronunciation Mapping
UNIT_PRONUNCIATIONS = {
    "ML": "mil",
    "CL": "centiliter",
    "L": "liter",
    "OZ": "ounce",
    "FL OZ": "fluid ounce",
    "F": "degrees Fahrenheit",
    "°F": "degrees Fahrenheit",
    "C": "degrees Celsius",
    "°C": "degrees Celsius",
    "PPM": "parts per million",
    "LB": "pound",
    "LBS": "pounds",
    "KG": "kilogram",
    "G": "gram",
}

# Short forms staff write on checklists that read badly out loud
ABBREVIATIONS = {
    "POS": "P O S",
    "TP": "toilet paper",
    "FIFO": "first in first out",
    "ID": "I D",
    "IDs": "I Ds",
    "HACCP": "hassup",
    "w/": "with",
    "&": "and",
}


def expand_units_for_tts(text):
    """
    Expands "750ml" -> "750 mil", "<41°F" -> "below 41 degrees Fahrenheit".
    Only number+unit pairs are touched.
    """
    def replace_unit(match):
        val = match.group(1)
        unit = " ".join(match.group(2).upper().split())
        if unit in UNIT_PRONUNCIATIONS:
            return f"{val} {UNIT_PRONUNCIATIONS[unit]}"
        return match.group(0)

    text = re.sub(r'<\s*(?=\d)', 'below ', text)
    text = re.sub(r'>\s*(?=\d)', 'above ', text)
    return re.sub(r'(\d+(?:\.\d+)?)\s*(°?[A-Za-z]+(?: oz)?)\b', replace_unit, text, flags=re.IGNORECASE)


def clean_for_tts(text):
    """
    Cleans checklist/inventory text for natural reading.
    "Check line coolers (<41°F)" -> "Check line coolers, below 41 degrees Fahrenheit"
    """
    if not text:
        return ""

    for short, spoken in ABBREVIATIONS.items():
        text = re.sub(rf'(?<!\w){re.escape(short)}(?!\w)', spoken, text)

    # Brackets read as pauses
    text = re.sub(r'\s*\(([^)]*)\)', r', \1', text)
    text = text.replace("/", " or ")
    text = text.replace("#", " number ")

    text = expand_units_for_tts(text)
    return re.sub(r'\s+', ' ', text).strip()


def format_size(size_ml):
    """750.0 -> "750 mil", 1000 -> "1 liter", None -> ""."""
    if not size_ml:
        return ""
    if size_ml >= 1000 and size_ml % 1000 == 0:
        liters = int(size_ml // 1000)
        return f"{liters} liter" if liters == 1 else f"{liters} liters"
    if float(size_ml).is_integer():
        return f"{int(size_ml)} mil"
    return f"{size_ml} mil"


def format_quantity(value):
    """3.0 -> "3", 2.5 -> "2.5"."""
    if value is None:
        return ""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"
