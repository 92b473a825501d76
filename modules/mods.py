"""Helpers shared by the scripts reading MODS records."""


def first_text(record, path):
    """Text of the first non-empty element at ``path``, or an empty string."""
    if record is None:
        return ""
    for element in record.find(path):
        if element.text:
            return element.text
    return ""


def texts(record, path):
    if record is None:
        return []
    return [element.text for element in record.find(path) if element.text]


def title(record):
    if record is None:
        return ""
    for info in record["titleInfo"]:
        # Alternative, translated and abbreviated titles carry a type.
        if info["@type"] is None:
            return join([first_text(info, "nonSort"), first_text(info, "title"), first_text(info, "subTitle")], " ")
    return first_text(record, "titleInfo/title")
