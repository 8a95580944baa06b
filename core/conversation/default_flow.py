"""
Help-desk conversation graph shipped with the service.

The graph covers the main menu, ticket requests, ticket lookups, a status
page, help and an agent callback. Ticket creation and lookup themselves are
performed outside the engine by turn listeners reading the context data the
steps collect.
"""

from models.schemas import (
    Session,
    StepDefinition,
    StepOption,
    Transition,
    ValidationKind,
    ValidationRule,
)
from .orchestration.step_registry import StepRegistry
from .orchestration.transitions import ERROR_STEP_ID

WELCOME_STEP_ID = "welcome"


def _store_as(key: str):
    """Build a step action that saves the trimmed input under key"""
    def action(user_input: str, session: Session) -> None:
        session.set_data(key, user_input.strip())
    action.__name__ = f"store_{key}"
    return action


def _route_callback(user_input: str, session: Session) -> str:
    if session.get_data("ticket_description"):
        return "agent_callback_ticket"
    return "agent_callback"


MAIN_MENU = StepOption(key="menu", label="Main menu", target_step_id=WELCOME_STEP_ID)


def default_steps():
    """Step definitions of the help-desk flow"""
    return [
        StepDefinition(
            id=WELCOME_STEP_ID,
            display_text=(
                "🤖 *Hello! Welcome to the Help Desk Bot!*\n\n"
                "I am your virtual assistant for ticket management and support.\n\n"
                "*How can I help you today?*"
            ),
            options=[
                StepOption(key="tickets", label="🎫 Manage tickets", target_step_id="tickets_menu"),
                StepOption(key="status", label="📊 System status", target_step_id="system_status"),
                StepOption(key="help", label="❓ Help", target_step_id="help"),
            ],
            validation=ValidationRule(kind=ValidationKind.OPTION),
            allow_back=False,
            allow_restart=False,
        ),
        StepDefinition(
            id="tickets_menu",
            display_text="🎫 *Ticket Management*\n\nChoose an option:",
            options=[
                StepOption(key="open", label="Open a new ticket", target_step_id="open_ticket_description"),
                StepOption(key="check", label="Check a ticket", target_step_id="ticket_lookup"),
                MAIN_MENU,
            ],
        ),
        StepDefinition(
            id="open_ticket_description",
            display_text="📝 Briefly describe your problem:",
            validation=ValidationRule(
                kind=ValidationKind.TEXT,
                min_length=10,
                max_length=500,
                error_text="Please describe the problem in 10 to 500 characters.",
            ),
            side_effect=_store_as("ticket_description"),
            transition=Transition.static("open_ticket_email"),
        ),
        StepDefinition(
            id="open_ticket_email",
            display_text="📧 Which email should we use to contact you?",
            validation=ValidationRule(kind=ValidationKind.EMAIL),
            side_effect=_store_as("contact_email"),
            transition=Transition.static("open_ticket_confirm"),
        ),
        StepDefinition(
            id="open_ticket_confirm",
            display_text="✅ Shall we open the ticket with the description and email you provided?",
            options=[
                StepOption(key="yes", label="Confirm", target_step_id="ticket_requested"),
                StepOption(key="no", label="Cancel", target_step_id="tickets_menu"),
            ],
        ),
        StepDefinition(
            id="ticket_requested",
            display_text=(
                "🎉 Your ticket request was registered.\n"
                "Our team will contact you by email."
            ),
            options=[MAIN_MENU],
            terminal=True,
        ),
        StepDefinition(
            id="ticket_lookup",
            display_text="🔎 Type the ticket number:",
            validation=ValidationRule(
                kind=ValidationKind.NUMBER,
                pattern=r"^\d{1,10}$",
                error_text="Ticket numbers contain digits only.",
            ),
            side_effect=_store_as("ticket_number"),
            transition=Transition.static("ticket_lookup_result"),
        ),
        StepDefinition(
            id="ticket_lookup_result",
            display_text="📋 Request received. The ticket status will be sent to you shortly.",
            options=[
                StepOption(key="again", label="Check another ticket", target_step_id="ticket_lookup"),
                MAIN_MENU,
            ],
            terminal=True,
        ),
        StepDefinition(
            id="system_status",
            display_text="📊 *System Status*\n\nAll services are operating normally.",
            options=[MAIN_MENU],
        ),
        StepDefinition(
            id="help",
            display_text=(
                "❓ *Help*\n\n"
                "Type the number of an option to choose it.\n"
                "Type 0 or 'back' to return to the previous step.\n"
                "Type # or 'restart' to start over."
            ),
            options=[
                StepOption(key="agent", label="Talk to an agent", target_step_id="agent_contact"),
                MAIN_MENU,
            ],
        ),
        StepDefinition(
            id="agent_contact",
            display_text="📞 Type a phone number so an agent can call you back:",
            validation=ValidationRule(kind=ValidationKind.PHONE),
            side_effect=_store_as("callback_phone"),
            transition=Transition.computed(_route_callback),
        ),
        StepDefinition(
            id="agent_callback",
            display_text="👍 An agent will call you back soon.",
            options=[MAIN_MENU],
            terminal=True,
        ),
        StepDefinition(
            id="agent_callback_ticket",
            display_text="👍 An agent will call you back soon about your ticket request.",
            options=[MAIN_MENU],
            terminal=True,
        ),
        StepDefinition(
            id=ERROR_STEP_ID,
            display_text=(
                "❌ Sorry, something went wrong.\n\n"
                "Send any message to see the main menu again."
            ),
            allow_back=False,
            allow_restart=False,
        ),
    ]


def build_default_registry() -> StepRegistry:
    """Create a registry holding the help-desk flow"""
    return StepRegistry(
        initial_step_id=WELCOME_STEP_ID,
        steps=default_steps(),
    )
