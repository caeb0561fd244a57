"""Notification templates for points economy events."""

from __future__ import annotations

import html
from dataclasses import dataclass


@dataclass
class RenderedTemplate:
    subject: str
    text_body: str
    html_body: str


def render_redemption_fulfilled(
    *,
    reward_title: str,
    sponsor_name: str | None,
    points_cost: int,
    contact_name: str | None,
    dashboard_url: str,
) -> RenderedTemplate:
    """Render the email sent once a sponsor reward has been handed over."""

    greeting = f"Hi {contact_name}," if contact_name else "Hi there,"
    subject = f"Your reward is ready: {reward_title}"
    sponsor_line = f"Sponsored by {sponsor_name}." if sponsor_name else None

    text_lines = [
        greeting,
        "",
        f"Your redemption of \"{reward_title}\" for {points_cost} points has been fulfilled.",
    ]
    if sponsor_line:
        text_lines.append(sponsor_line)
    text_lines.extend(
        [
            "",
            f"See all of your rewards at {dashboard_url}.",
            "",
            "Thanks for recycling,",
            "The EcoQuest Team",
        ]
    )
    text_body = "\n".join(text_lines)

    sponsor_html = f"<p>{html.escape(sponsor_line)}</p>" if sponsor_line else ""
    html_body = f"""<html>
  <body>
    <p>{html.escape(greeting)}</p>
    <p>Your redemption of <strong>{html.escape(reward_title)}</strong> for {points_cost} points has been fulfilled.</p>
    {sponsor_html}
    <p><a href="{html.escape(dashboard_url)}">See all of your rewards</a></p>
    <p>Thanks for recycling,<br/>The EcoQuest Team</p>
  </body>
</html>"""

    return RenderedTemplate(subject=subject, text_body=text_body, html_body=html_body)


def render_challenge_verified(
    *,
    challenge_title: str,
    approved: bool,
    points_awarded: int,
    admin_notes: str | None,
    contact_name: str | None,
) -> RenderedTemplate:
    greeting = f"Hi {contact_name}," if contact_name else "Hi there,"
    if approved:
        subject = f"You earned {points_awarded} points for {challenge_title}"
        outcome = f"Your proof for \"{challenge_title}\" was approved and {points_awarded} points were added to your balance."
    else:
        subject = f"Update on your challenge: {challenge_title}"
        outcome = f"Your proof for \"{challenge_title}\" could not be approved this time."

    text_lines = [greeting, "", outcome]
    if admin_notes:
        text_lines.extend(["", "Reviewer notes:", admin_notes])
    text_lines.extend(["", "The EcoQuest Team"])

    notes_html = ""
    if admin_notes:
        notes_html = f"<p><strong>Reviewer notes:</strong> {html.escape(admin_notes)}</p>"
    html_body = f"""<html>
  <body>
    <p>{html.escape(greeting)}</p>
    <p>{html.escape(outcome)}</p>
    {notes_html}
    <p>The EcoQuest Team</p>
  </body>
</html>"""

    return RenderedTemplate(subject=subject, text_body="\n".join(text_lines), html_body=html_body)
