"""
Tests for notification text templates and placeholder substitution.
"""

import pytest

from propsim.common.templates import TemplateManager, get_current_template_manager, substitute


class TestSubstitute:
    def test_replaces_known_placeholders(self):
        assert substitute("Hello {name}", {"name": "Ada"}) == "Hello Ada"

    def test_unknown_placeholders_are_left_as_is(self):
        assert substitute("{a} and {b}", {"a": 1}) == "1 and {b}"

    def test_none_value_is_left_as_placeholder(self):
        assert substitute("Level {level}", {"level": None}) == "Level {level}"


class TestTemplateManager:
    def test_render_english(self):
        title, message = TemplateManager("en").render("level_up", level=4)
        assert title == "Level up!"
        assert message == "Congratulations, you reached level 4!"

    def test_render_chinese(self):
        title, message = TemplateManager("zh").render("mission_completed", missionName="Harbor")
        assert title == "任务完成"
        assert "Harbor" in message

    def test_unknown_template_raises_key_error(self):
        with pytest.raises(KeyError):
            TemplateManager().render("does_not_exist")

    def test_all_locales_cover_the_same_templates(self):
        manager = TemplateManager()
        english = set(manager.TEMPLATE_STRINGS["en"])
        for locale in manager.get_available_locales():
            assert set(manager.TEMPLATE_STRINGS[locale]) == english

    def test_unsupported_locale_rejected(self):
        with pytest.raises(ValueError, match="Unsupported locale"):
            TemplateManager("fr")

    def test_set_locale_keeps_previous_on_error(self):
        manager = TemplateManager("zh")
        with pytest.raises(ValueError):
            manager.set_locale("fr")
        assert manager.locale == "zh"

    def test_locale_from_environment(self, monkeypatch):
        monkeypatch.setenv("PROPSIM_LOCALE", "ZH ")
        assert get_current_template_manager().locale == "zh"
        monkeypatch.delenv("PROPSIM_LOCALE")
        assert get_current_template_manager().locale == "en"
