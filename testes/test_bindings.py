import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from fedora_migrator.parsers.tree import Element
from fedora_migrator.scripting.bindings import edtf, join, plain_text, stable_hash


def test_edtf_rfc2822():
    assert edtf("Thu, 18 Nov 1954 00:00:00 +0000") == "1954-11-18T00:00:00+00:00"


def test_edtf_rfc3339():
    assert edtf("1954-11-18T10:30:00Z") == "1954-11-18T10:30:00+00:00"
    assert edtf("1954-11-18T10:30:00-04:00") == "1954-11-18T10:30:00-04:00"


def test_edtf_falls_back_to_first_date():
    assert edtf("1900-01-01") == "1900-01-01"
    assert edtf("circa 1900-01-01?") == "1900-01-01"


def test_edtf_invalid_values_are_empty():
    assert edtf("1900-13-45") == ""
    assert edtf("unknown") == ""
    assert edtf("") == ""
    assert edtf(None) == ""


def test_join_skips_empty_values():
    assert join(["History", "", None, "Art"], "|") == "History|Art"
    assert join([]) == ""
    assert join([Element("topic", "", "History"), 1900], ", ") == "History, 1900"


def test_plain_text_strips_markup():
    assert plain_text("<p>Harbour&nbsp;at <b>dusk</b></p>") == "Harbour at dusk"
    assert plain_text("  plain\n  text ") == "plain text"
    assert plain_text(None) == ""


def test_stable_hash_is_deterministic():
    assert stable_hash("History") == stable_hash("History")
    assert stable_hash("History") != stable_hash("Art")
    assert len(stable_hash("History")) == 16
