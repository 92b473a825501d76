import json
import os
import sys

import pytest

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from fedora_migrator.repository import Repository
from fedora_migrator.scripting import ScriptHost, stable_hash
from fedora_migrator.utils.errors import ScriptParseError, ScriptRuntimeError

from conftest import CREATED, mods

SUBJECT = '''
def headers():
    return ["topic"]


def rows(pid):
    obj = object(pid)
    record = obj.datastream("MODS") if obj else None
    if record is None:
        return []
    return [[topic.text] for topic in record.find("subject/topic")]
'''


@pytest.fixture
def messages():
    return []


@pytest.fixture
def host(repository_root, tmp_path, messages):
    def log(message, level="INFO"):
        messages.append((level, message))

    return ScriptHost(
        Repository(str(repository_root), log=log),
        [str(tmp_path / "modules")],
        log=log,
        report_dir=str(tmp_path / "reports"),
    )


def test_headers_and_rows(builder, host, write_script):
    builder.add_with_mods("ns:1", mods("History", "Art"))
    module = host.load(write_script("subject", SUBJECT))
    assert module.name == "subject"
    assert host.call_headers(module) == ["topic"]
    assert host.call_rows(module, "ns:1") == [["History"], ["Art"]]
    assert host.call_rows(module, "ns:404") == []


def test_object_handle_properties(builder, host, write_script):
    builder.add("ns:1", label="Page 1", parents=[("isPageOf", "ns:book")],
                rels_extra="<islandora:isPageNumber>1</islandora:isPageNumber>")
    source = '''
def headers():
    return ["pid", "label", "model", "state", "owner", "weight", "created", "streams"]


def rows(pid):
    obj = object(pid)
    return [[obj.pid, obj.label, obj.model, obj.state, obj.owner, obj.weight, obj.created,
             join(obj.datastreams, ",")]]
'''
    module = host.load(write_script("props", source))
    assert host.call_rows(module, "ns:1") == [[
        "ns:1", "Page 1", "islandora:sp_basic_image", "Active", "admin", 1,
        "2020-01-01T00:00:00+00:00", "RELS-EXT",
    ]]


def test_syntax_error_reports_line_and_column(host, write_script):
    path = write_script("broken", "def headers():\n    return 1 +\n")
    with pytest.raises(ScriptParseError) as info:
        host.load(path)
    assert info.value.path == path
    assert info.value.line == 2
    assert info.value.column is not None
    assert path in str(info.value)


def test_private_names_are_rejected_at_load(host, write_script):
    path = write_script("private", "def headers():\n    return _secret\n\n\ndef rows(pid):\n    return []\n")
    with pytest.raises(ScriptParseError) as info:
        host.load(path)
    assert info.value.line == 2


def test_disallowed_import_fails_at_load(host, write_script):
    path = write_script("imports", "import os\n\n\ndef headers():\n    return []\n\n\ndef rows(pid):\n    return []\n")
    with pytest.raises(ScriptRuntimeError) as info:
        host.load(path)
    assert info.value.line == 1
    assert "os" in info.value.message


def test_missing_entry_point_fails_at_load(host, write_script):
    path = write_script("partial", "def headers():\n    return ['a']\n")
    with pytest.raises(ScriptRuntimeError) as info:
        host.load(path)
    assert info.value.function == "rows"


def test_runtime_error_names_function_object_and_position(builder, host, write_script):
    builder.add("ns:1")
    source = "def headers():\n    return ['a']\n\n\ndef rows(pid):\n    return [[1 / 0]]\n"
    module = host.load(write_script("divide", source))
    with pytest.raises(ScriptRuntimeError) as info:
        host.call_rows(module, "ns:1")
    error = info.value
    assert error.function == "rows"
    assert error.pid == "ns:1"
    assert error.line == 6
    assert "ZeroDivisionError" in error.message
    assert "ns:1" in str(error)


def test_undefined_function_is_a_runtime_error(builder, host, write_script):
    source = "def headers():\n    return ['a']\n\n\ndef rows(pid):\n    return [[lookup(pid)]]\n"
    module = host.load(write_script("undefined", source))
    with pytest.raises(ScriptRuntimeError) as info:
        host.call_rows(module, "ns:1")
    assert "NameError" in info.value.message


def test_each_call_starts_from_a_fresh_namespace(builder, host, write_script):
    source = '''
seen = []


def headers():
    return ["count"]


def rows(pid):
    seen.append(pid)
    return [[len(seen)]]
'''
    module = host.load(write_script("state", source))
    assert host.call_rows(module, "ns:1") == [[1]]
    assert host.call_rows(module, "ns:2") == [[1]]


def test_non_xml_stream_is_absent(builder, host):
    builder.add("ns:1", streams={"OBJ": [("OBJ.0", "image/jpeg", CREATED, b"\xff\xd8\xff")]})
    assert host.datastream("ns:1", "OBJ") is None
    assert host.datastream("ns:1", "MODS") is None


def test_malformed_stream_is_absent_and_reported(builder, host, tmp_path, messages):
    builder.add_with_mods("ns:1", b"<mods:mods><mods:title>")
    assert host.datastream("ns:1", "MODS") is None
    assert any(level == "WARNING" and "MODS" in message for level, message in messages)
    with open(tmp_path / "reports" / "errors.jsonl", encoding="utf-8") as f:
        entry = json.loads(f.readline())
    assert entry["code"] == "CONVERSION"
    assert entry["pid"] == "ns:1"
    assert entry["dsid"] == "MODS"


def test_print_and_debug_go_to_the_log(builder, host, write_script, messages):
    builder.add("ns:1")
    source = '''
def headers():
    return ["pid"]


def rows(pid):
    print("visiting", pid)
    debug("labels", [1, 2])
    return [[pid]]
'''
    module = host.load(write_script("chatty", source))
    assert host.call_rows(module, "ns:1") == [["ns:1"]]
    debug_lines = [message for level, message in messages if level == "DEBUG"]
    assert "visiting ns:1" in debug_lines
    assert "labels [1, 2]" in debug_lines


def test_helper_modules_are_importable(builder, host, write_script):
    builder.add_with_mods("ns:1", mods("History", title="Harbour"))
    write_script("titles", '''
def title(record):
    return record.find("titleInfo/title")[0].text
''', directory="modules")
    source = '''
import titles


def headers():
    return ["title"]


def rows(pid):
    return [[titles.title(object(pid).datastream("MODS"))]]
'''
    module = host.load(write_script("uses_helper", source))
    assert host.call_rows(module, "ns:1") == [["Harbour"]]


def test_stdlib_math_and_re_are_allowed(host, write_script):
    source = '''
import math
import re


def headers():
    return [str(math.floor(2.5)), re.sub("[0-9]", "", "a1b2")]


def rows(pid):
    return []
'''
    module = host.load(write_script("stdlib", source))
    assert host.call_headers(module) == ["2", "ab"]


def test_hash_is_deterministic(host, write_script):
    source = "def headers():\n    return [hash('History')]\n\n\ndef rows(pid):\n    return []\n"
    module = host.load(write_script("hashing", source))
    assert host.call_headers(module) == [stable_hash("History")]
    assert host.call_headers(module) == host.call_headers(module)


def test_scripts_cannot_mutate_host_objects(builder, host, write_script):
    builder.add("ns:1")
    source = '''
def headers():
    return ["label"]


def rows(pid):
    obj = object(pid)
    obj.label = "changed"
    return [[obj.label]]
'''
    module = host.load(write_script("mutate", source))
    with pytest.raises(ScriptRuntimeError):
        host.call_rows(module, "ns:1")


def test_stdlib_imports_do_not_expose_other_modules(host, write_script, tmp_path):
    marker = tmp_path / "written.txt"
    source = f'''
import re


def headers():
    os = re.enum.sys.modules["os"]
    os.close(os.open({str(marker)!r}, os.O_CREAT | os.O_WRONLY))
    return ["a"]


def rows(pid):
    return []
'''
    module = host.load(write_script("escape", source))
    with pytest.raises(ScriptRuntimeError) as info:
        host.call_headers(module)
    assert "AttributeError" in info.value.message
    assert not marker.exists()


def test_stdlib_names_outside_the_exports_are_missing(host, write_script):
    source = "import math\n\n\ndef headers():\n    return [math.sys]\n\n\ndef rows(pid):\n    return []\n"
    module = host.load(write_script("hidden", source))
    with pytest.raises(ScriptRuntimeError):
        host.call_headers(module)


def test_regex_flags_and_patterns_work(host, write_script):
    source = '''
import re
from re import IGNORECASE, sub


def headers():
    return [sub("history", "H", "HISTORY", flags=IGNORECASE), re.compile("[0-9]+").findall("a12b3")[1]]


def rows(pid):
    return []
'''
    module = host.load(write_script("flags", source))
    assert host.call_headers(module) == ["H", "3"]
