"""One row per topical subject of each object's MODS record."""


def headers():
    return ["topic"]


def rows(pid):
    obj = object(pid)
    mods = obj.datastream("MODS") if obj else None
    if mods is None:
        return []
    return [[topic.text] for topic in mods.find("subject/topic")]
