"""
Notification text templates for propsim.

Provides the localized title/message strings used by the notification
pipeline, with `{name}` placeholder substitution. Placeholders without a
supplied value are left untouched so partially rendered text stays readable.
"""

import os
import re
from typing import Any, Dict, List, Mapping

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class TemplateManager:
    """
    Localized notification template lookup.

    Example:
        >>> manager = TemplateManager("en")
        >>> manager.render("level_up", level=4)
        ('Level up!', 'Congratulations, you reached level 4!')
    """

    TEMPLATE_STRINGS: Dict[str, Dict[str, Dict[str, str]]] = {
        "en": {
            "achievement_unlocked": {
                "title": "Achievement unlocked!",
                "message": "You unlocked a new achievement: {achievementName}",
            },
            "mission_completed": {
                "title": "Mission complete",
                "message": "Exploration mission \"{missionName}\" is complete!",
            },
            "mission_failed": {
                "title": "Mission failed",
                "message": "Exploration mission \"{missionName}\" failed. Don't give up!",
            },
            "tenant_complaint": {
                "title": "Tenant complaint",
                "message": "Tenant {tenantName} filed a complaint about {propertyName}",
            },
            "tenant_satisfaction": {
                "title": "Happy tenant",
                "message": "Tenant {tenantName} is very satisfied with your service!",
            },
            "property_maintenance": {
                "title": "Maintenance reminder",
                "message": "Property {propertyName} needs maintenance",
            },
            "property_upgrade_complete": {
                "title": "Upgrade complete",
                "message": "The upgrade of {propertyName} is finished!",
            },
            "market_opportunity": {
                "title": "Market opportunity",
                "message": "A promising opportunity appeared: {opportunityName}",
            },
            "daily_login": {
                "title": "Daily login",
                "message": "Welcome back! You have logged in {days} days in a row",
            },
            "level_up": {
                "title": "Level up!",
                "message": "Congratulations, you reached level {level}!",
            },
        },
        "zh": {
            "achievement_unlocked": {
                "title": "成就解锁！",
                "message": "恭喜你解锁了新成就：{achievementName}",
            },
            "mission_completed": {
                "title": "任务完成",
                "message": "探险任务「{missionName}」已完成！",
            },
            "mission_failed": {
                "title": "任务失败",
                "message": "探险任务「{missionName}」失败了，不要灰心！",
            },
            "tenant_complaint": {
                "title": "租户投诉",
                "message": "租户 {tenantName} 对 {propertyName} 提出了投诉",
            },
            "tenant_satisfaction": {
                "title": "租户满意",
                "message": "租户 {tenantName} 对你的服务非常满意！",
            },
            "property_maintenance": {
                "title": "维护提醒",
                "message": "物业 {propertyName} 需要进行维护",
            },
            "property_upgrade_complete": {
                "title": "升级完成",
                "message": "物业 {propertyName} 的升级已完成！",
            },
            "market_opportunity": {
                "title": "市场机会",
                "message": "发现了一个不错的投资机会：{opportunityName}",
            },
            "daily_login": {
                "title": "每日登录",
                "message": "欢迎回来！你已连续登录 {days} 天",
            },
            "level_up": {
                "title": "等级提升！",
                "message": "恭喜你升到了 {level} 级！",
            },
        },
    }

    def __init__(self, locale: str = "en"):
        """
        Initialize TemplateManager with the given locale.

        Args:
            locale: Language code ("en" or "zh")
        """
        self.locale = locale
        self._validate_locale()

    def _validate_locale(self) -> None:
        if self.locale not in self.TEMPLATE_STRINGS:
            raise ValueError(
                f"Unsupported locale: {self.locale}. Supported locales: {list(self.TEMPLATE_STRINGS.keys())}"
            )

    def has_template(self, template_id: str) -> bool:
        return template_id in self.TEMPLATE_STRINGS["en"]

    def get_template(self, template_id: str) -> Dict[str, str]:
        """
        Get the raw title/message pair for a template.

        Raises:
            KeyError: If the template id is unknown
        """
        strings = self.TEMPLATE_STRINGS[self.locale]
        if template_id in strings:
            return strings[template_id]
        if template_id in self.TEMPLATE_STRINGS["en"]:
            return self.TEMPLATE_STRINGS["en"][template_id]
        raise KeyError(f"Notification template '{template_id}' not found for locale '{self.locale}'")

    def render(self, template_id: str, **variables: Any) -> tuple[str, str]:
        """
        Render a template's title and message.

        Args:
            template_id: Template key
            **variables: Values for `{name}` placeholders

        Returns:
            Tuple of (title, message)
        """
        template = self.get_template(template_id)
        return (
            substitute(template["title"], variables),
            substitute(template["message"], variables),
        )

    def set_locale(self, locale: str) -> None:
        old_locale = self.locale
        self.locale = locale
        try:
            self._validate_locale()
        except ValueError:
            self.locale = old_locale
            raise

    def get_available_locales(self) -> List[str]:
        return list(self.TEMPLATE_STRINGS.keys())


def substitute(text: str, variables: Mapping[str, Any]) -> str:
    """Replace `{name}` placeholders, leaving unknown ones as-is."""

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        value = variables.get(key)
        return match.group(0) if value is None else str(value)

    return _PLACEHOLDER.sub(_replace, text)


def get_current_template_manager() -> TemplateManager:
    """
    Get a TemplateManager for the PROPSIM_LOCALE environment variable.

    Returns:
        TemplateManager instance configured for the current locale
    """
    current_locale = os.getenv("PROPSIM_LOCALE", "en").strip().lower() or "en"
    return TemplateManager(current_locale)
