"""Tests for translatable node discovery and change detection."""

import pytest
from lxml import etree

from langsync.translation.diff import (
    create_translation_item,
    find_source_comment,
    get_translatable_items,
    update_element_translation,
)
from langsync.translation.documents import get_root_elements, inner_xml
from langsync.translation.manifest import content_hash
from langsync.translation.validator import normalize_placeholder, placeholders_match

from conftest import GREETINGS_XML


def _doc(xml):
    return etree.ElementTree(etree.fromstring(xml.encode("utf-8")))


def _first(doc, tag):
    return doc.getroot().find(tag)


TARGET_XML = """<?xml version="1.0" encoding="utf-8"?>
<Language>
  <Greeting>Hallo <b>Freund</b></Greeting>
  <!-- <En>Hello <b>friend</b></En> -->
  <Farewell>Auf Wiedersehen</Farewell>
  <!-- <En>Goodbye</En> -->
  <Tips><li>Drücke [Key] zum Springen</li><li>Ruhe dich aus</li></Tips>
  <!-- <En><li>Press [Key] to jump</li><li>Rest often</li></En> -->
</Language>
"""


class TestFindSourceComment:

    def test_comment_after_element(self):
        doc = _doc(GREETINGS_XML)
        assert find_source_comment(_first(doc, "Greeting")) == (True, "Hello <b>friend</b>")

    def test_element_without_comment(self):
        doc = _doc(GREETINGS_XML)
        assert find_source_comment(_first(doc, "Untranslated")) == (False, "")

    def test_next_element_stops_search(self):
        doc = _doc("<r><A>x</A><B>y</B><!-- <En>y</En> --></r>")
        assert find_source_comment(_first(doc, "A")) == (False, "")
        assert find_source_comment(_first(doc, "B")) == (True, "y")

    def test_text_between_element_and_comment_stops_search(self):
        doc = _doc("<r><A>x</A> stray <!-- <En>x</En> --></r>")
        assert find_source_comment(_first(doc, "A")) == (False, "")

    def test_unrelated_comment_is_skipped(self):
        doc = _doc("<r><A>x</A>\n<!-- note -->\n<!-- <En>x</En> --></r>")
        assert find_source_comment(_first(doc, "A")) == (True, "x")

    def test_multiline_comment(self):
        doc = _doc("<r><A>x</A><!-- <En>line one\nline two</En> --></r>")
        assert find_source_comment(_first(doc, "A")) == (True, "line one\nline two")


class TestCreateTranslationItem:

    def test_scalar_with_markup(self):
        item = create_translation_item("Hello <b>friend</b>")
        assert not item.is_list
        assert item.texts_to_translate == ["Hello __p0__friend__p1__"]
        assert item.placeholders == [["<b>", "</b>"]]
        assert item.original_content == "Hello <b>friend</b>"

    def test_list_items(self):
        item = create_translation_item("<li>Press [Key] to jump</li><li>Rest often</li>")
        assert item.is_list
        assert item.texts_to_translate == ["Press __p0__ to jump", "Rest often"]
        assert item.placeholders == [["[Key]"], []]

    def test_malformed_markup_falls_back_to_scalar(self):
        item = create_translation_item("Tom & Jerry <li>")
        assert not item.is_list
        assert item.texts_to_translate == ["Tom & Jerry __p0__"]

    def test_segments_and_placeholders_aligned(self):
        item = create_translation_item("<li>a</li><li>b [c]</li><li>d</li>")
        assert len(item.texts_to_translate) == len(item.placeholders) == 3


class TestGetTranslatableItems:

    def test_new_file_returns_all_nodes_in_order(self):
        items = get_translatable_items(_doc(GREETINGS_XML))
        assert list(items) == ["Greeting", "Farewell", "Tips"]

    def test_elements_with_children_are_not_translatable(self):
        source = _doc("<L><Group><b>x</b></Group><!-- <En>x</En> --></L>")
        assert get_translatable_items(source) == {}

    def test_valid_target_without_hashes_is_kept(self):
        target = get_root_elements(_doc(TARGET_XML))
        assert get_translatable_items(_doc(GREETINGS_XML), target, None) == {}

    def test_missing_target_element(self):
        target = get_root_elements(_doc("<Language><Greeting>Hallo <b>Freund</b></Greeting></Language>"))
        reasons = []
        items = get_translatable_items(_doc(GREETINGS_XML), target, None, reasons)
        assert list(items) == ["Farewell", "Tips"]
        assert reasons == [
            "'Farewell': Target element not found.",
            "'Tips': Target element not found.",
        ]

    def test_matching_hash_skips_even_invalid_target(self):
        target = get_root_elements(_doc(
            "<Language><Greeting/><Farewell/><Tips/></Language>"
        ))
        hashes = {
            "Greeting": content_hash("Hello <b>friend</b>"),
            "Farewell": content_hash("Goodbye").upper(),
            "Tips": content_hash("<li>Press [Key] to jump</li><li>Rest often</li>"),
        }
        assert get_translatable_items(_doc(GREETINGS_XML), target, hashes) == {}

    def test_hash_mismatch_retranslates(self):
        target = get_root_elements(_doc(TARGET_XML))
        hashes = {"Farewell": content_hash("Good bye")}
        reasons = []
        items = get_translatable_items(_doc(GREETINGS_XML), target, hashes, reasons)
        assert list(items) == ["Farewell"]
        assert reasons == ["'Farewell': Source text changed (hash mismatch). Re-translating."]

    def test_lost_placeholder_is_scheduled(self):
        target_xml = TARGET_XML.replace("Hallo <b>Freund</b>", "Hallo Freund")
        reasons = []
        items = get_translatable_items(_doc(GREETINGS_XML), get_root_elements(_doc(target_xml)), {}, reasons)
        assert list(items) == ["Greeting"]
        assert reasons == [
            "'Greeting': Structure/content mismatch. Structure same: True, "
            "Placeholders match: False, Text valid: True."
        ]

    def test_empty_target_text_is_scheduled(self):
        target_xml = TARGET_XML.replace("<Farewell>Auf Wiedersehen</Farewell>", "<Farewell></Farewell>")
        items = get_translatable_items(_doc(GREETINGS_XML), get_root_elements(_doc(target_xml)))
        assert list(items) == ["Farewell"]

    def test_scalar_target_for_list_source_is_scheduled(self):
        target_xml = TARGET_XML.replace(
            "<Tips><li>Drücke [Key] zum Springen</li><li>Ruhe dich aus</li></Tips>",
            "<Tips>Drücke [Key]</Tips>",
        )
        items = get_translatable_items(_doc(GREETINGS_XML), get_root_elements(_doc(target_xml)))
        assert list(items) == ["Tips"]

    def test_blank_source_only_checks_shape_and_placeholders(self):
        source = _doc("<L><Empty></Empty><!-- <En></En> --></L>")
        target = get_root_elements(_doc("<L><Empty></Empty></L>"))
        assert get_translatable_items(source, target) == {}

    def test_no_debug_reasons_without_list(self):
        target = get_root_elements(_doc("<Language/>"))
        items = get_translatable_items(_doc(GREETINGS_XML), target, None, None)
        assert len(items) == 3

    def test_duplicate_keys_raise(self):
        source = _doc("<L><A>x</A><!-- <En>x</En> --><A>y</A><!-- <En>y</En> --></L>")
        with pytest.raises(ValueError, match="Duplicate"):
            get_translatable_items(source)

    def test_self_closing_spelling_is_not_a_mismatch(self):
        source = _doc("<L><Desc/><!-- <En>Pick up the <item /> now</En> --></L>")
        target = get_root_elements(_doc("<L><Desc>Hebe das <item/> auf</Desc></L>"))
        assert get_translatable_items(source, target) == {}


class TestUpdateElementTranslation:

    def test_markup_becomes_children(self):
        element = etree.Element("Greeting")
        update_element_translation(element, "Hallo <b>Freund</b>!")
        assert element.text == "Hallo "
        assert element[0].tag == "b"
        assert inner_xml(element) == "Hallo <b>Freund</b>!"

    def test_list_translation(self):
        element = etree.Element("Tips")
        update_element_translation(element, "<li>Eins</li><li>Zwei</li>")
        assert [li.text for li in element] == ["Eins", "Zwei"]

    def test_invalid_markup_kept_as_text(self):
        element = etree.Element("Farewell")
        etree.SubElement(element, "old")
        update_element_translation(element, "Tom & Jerry")
        assert len(element) == 0
        assert element.text == "Tom & Jerry"


class TestListSegments:

    def test_fewer_target_entries_are_scheduled(self):
        source = _doc("<L><Tips/><!-- <En><li>a</li><li>b</li><li>c</li></En> --></L>")
        target = get_root_elements(_doc("<L><Tips><li>A</li><li>B</li></Tips></L>"))
        assert list(get_translatable_items(source, target)) == ["Tips"]

    def test_same_entry_count_is_kept(self):
        source = _doc("<L><Tips/><!-- <En><li>a</li><li>b</li></En> --></L>")
        target = get_root_elements(_doc("<L><Tips><li>A</li><li>B</li></Tips></L>"))
        assert get_translatable_items(source, target) == {}


class TestPlaceholderSpelling:

    @pytest.mark.parametrize("source, target", [
        ("<item />", "<item/>"),
        ('<color  value="red" >', '<color value="red">'),
        ("[Key]", "[Key]"),
    ])
    def test_equivalent_spellings_match(self, source, target):
        assert placeholders_match([[source]], [[target]])

    def test_bracket_tokens_are_not_rewritten(self):
        assert normalize_placeholder("[Jump Key]") == "[Jump Key]"
        assert not placeholders_match([["[Key ]"]], [["[Key]"]])
