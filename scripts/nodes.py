"""One row per object with its descriptive and structural metadata."""

import mods


def headers():
    return ["pid", "title", "model", "parents", "weight", "owner", "date", "description"]


def rows(pid):
    obj = object(pid)
    if obj is None:
        return []
    record = obj.datastream("MODS")
    return [[
        pid,
        mods.title(record) or obj.label,
        obj.model,
        join(obj.parents, "|"),
        obj.weight,
        obj.owner,
        edtf(mods.first_text(record, "originInfo/dateIssued")),
        plain_text(mods.first_text(record, "abstract")),
    ]]
