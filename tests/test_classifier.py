"""
Tests for the TypeClassifier module.
"""

import pytest

from sn_typings.core.schema.classifier import (
    GLOBAL_CATEGORIES,
    GLOBAL_EXPLICIT_TYPES,
    SCOPED_EXPLICIT_TYPES,
    Classification,
    RenderMode,
    TypeClassifier,
    WrapperCategory,
    classify,
    wrapper_type_name,
)


class TestRenderMode:
    """Tests for RenderMode parsing."""

    def test_from_string_valid(self):
        assert RenderMode.from_string("global") == RenderMode.GLOBAL
        assert RenderMode.from_string("G") == RenderMode.GLOBAL
        assert RenderMode.from_string("") == RenderMode.GLOBAL
        assert RenderMode.from_string("s") == RenderMode.SCOPED
        assert RenderMode.from_string(" Scoped ") == RenderMode.SCOPED

    def test_from_string_invalid(self):
        with pytest.raises(ValueError):
            RenderMode.from_string("local")


class TestGlobalMode:
    """Tests for the global object model mapping."""

    @pytest.fixture
    def classifier(self):
        return TypeClassifier(RenderMode.GLOBAL)

    def test_decimal_is_explicit_numeric(self):
        assert classify("decimal", RenderMode.GLOBAL) == Classification(WrapperCategory.NUMERIC, True)

    def test_string_is_generic(self):
        assert classify("string", RenderMode.GLOBAL) == Classification(WrapperCategory.GENERIC, False)

    def test_integer_is_not_explicit(self, classifier):
        assert classifier.classify("integer") == Classification(WrapperCategory.NUMERIC, False)
        assert classifier.type_name_for("integer") == "GlideElementNumeric"

    def test_known_types(self, classifier):
        assert classifier.type_name_for("boolean") == "GlideElementBoolean"
        assert classifier.type_name_for("reference") == "GlideElementReference"
        assert classifier.type_name_for("script") == "GlideElementScript"
        assert classifier.type_name_for("glide_date_time") == "GlideElementGlideObject"
        assert classifier.type_name_for("ip_addr") == "GlideElementIPAddress"

    def test_journal_is_explicit_glide_object(self, classifier):
        assert classifier.classify("journal") == Classification(WrapperCategory.GLIDE_OBJECT, True)

    def test_case_insensitive(self, classifier):
        assert classifier.classify("Decimal") == classifier.classify("decimal")

    def test_unknown_falls_back(self, classifier):
        """Test that unknown and missing names never raise."""
        assert classifier.classify("no_such_type").category == WrapperCategory.GENERIC
        assert classifier.classify(None).category == WrapperCategory.GENERIC
        assert classifier.type_name_for("no_such_type") == "GlideElement"

    def test_explicit_types_are_classified(self):
        """Test that every explicit type has its own category entry."""
        assert GLOBAL_EXPLICIT_TYPES <= set(GLOBAL_CATEGORIES)

    def test_every_category_has_a_name(self):
        for category in set(GLOBAL_CATEGORIES.values()):
            assert wrapper_type_name(category, RenderMode.GLOBAL) != "GlideElement"


class TestScopedMode:
    """Tests for the scoped object model mapping."""

    @pytest.fixture
    def classifier(self):
        return TypeClassifier(RenderMode.SCOPED)

    def test_journal_types(self, classifier):
        assert classifier.classify("journal") == Classification(WrapperCategory.JOURNAL, False)
        assert classifier.classify("glide_list") == Classification(WrapperCategory.JOURNAL, True)
        assert classifier.type_name_for("journal_input") == "JournalGlideElement"

    def test_date_time_types(self, classifier):
        assert classifier.classify("glide_date_time") == Classification(WrapperCategory.DATE_TIME, False)
        assert classifier.classify("glide_date").explicit is True
        assert classifier.type_name_for("glide_date_time") == "GlideDateTimeElement"

    @pytest.mark.parametrize("type_name", ["reference", "currency2", "document_id", "domain_id"])
    def test_reference_like_types(self, classifier, type_name):
        assert classifier.classify(type_name).category == WrapperCategory.REFERENCE
        assert classifier.type_name_for(type_name) == "GlideElementReference"

    def test_other_types_are_generic(self, classifier):
        assert classifier.classify("decimal") == Classification(WrapperCategory.GENERIC, False)
        assert classifier.type_name_for("boolean") == "GlideElement"

    def test_modes_are_independent(self):
        assert "decimal" in GLOBAL_EXPLICIT_TYPES
        assert "decimal" not in SCOPED_EXPLICIT_TYPES
