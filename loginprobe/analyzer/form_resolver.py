"""Form field resolution against ordered selector candidates."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from .models import FormElements

if TYPE_CHECKING:
    from ..config import FormSettings
    from .challenge import ChallengeClassifier
    from .controller import PageController

logger = logging.getLogger(__name__)


class FormResolver:
    """Finds the first existing selector for each login-form role."""

    def __init__(self, form: "FormSettings", challenges: Optional["ChallengeClassifier"] = None):
        self.form = form
        self.challenges = challenges

    async def resolve(self, controller: "PageController") -> FormElements:
        username = await controller.find_first_existing(self.form.username_selectors)
        password = await controller.find_first_existing(self.form.password_selectors)
        submit = await controller.find_first_existing(self.form.submit_selectors)
        checkbox = await controller.find_first_existing(self.form.checkbox_selectors)
        captcha_input = await controller.find_first_existing(self.form.captcha_selectors)

        challenge = None
        if self.challenges is not None:
            challenge = await self.challenges.detect(controller)

        elements = FormElements(
            username_selector=username,
            password_selector=password,
            submit_selector=submit,
            checkbox_selector=checkbox or None,
            captcha_input_selector=captcha_input or None,
            challenge=challenge,
        )
        logger.debug("Resolved form elements: %s", elements.to_dict())
        return elements
