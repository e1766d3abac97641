"""
Canned responses for the hostel assistant widget.

Rules are checked in order against the lower-cased query and the first rule
with a matching keyword wins.
"""

from typing import Callable, List, Optional, Tuple

Rule = Tuple[Callable[[str], bool], str]


def _any(*words: str) -> Callable[[str], bool]:
    return lambda q: any(w in q for w in words)


def _room_booking(q: str) -> bool:
    return "room" in q and ("book" in q or "reserve" in q)


GREETING = "Hello {name}! How can I assist you today?"

FALLBACK = (
    "I'm not sure about that. You can ask me about room booking, fee payments, "
    "complaints, WiFi, meals, laundry, visitors, or hostel rules."
)

RULES: List[Rule] = [
    (_room_booking,
     "You can book a room by going to the Room Booking page from your dashboard. "
     "You'll need to select an available room and confirm your booking."),
    (_any("fee", "payment"),
     "Fee payment can be done through the Fee Payment section. "
     "You can view your current dues and pay online using various payment methods."),
    (_any("complaint", "issue", "problem"),
     "To submit a complaint, navigate to the My Complaints section from your dashboard. "
     "Describe your issue, and our team will address it as soon as possible."),
    (_any("wifi", "internet"),
     "WiFi access is available throughout the hostel. The network name is 'HostelNet', and the "
     "password is provided in your welcome kit. If you're having connection issues, please submit a complaint."),
    (_any("food", "meal", "dining"),
     "Meal timings: Breakfast (7-9 AM), Lunch (12-2 PM), and Dinner (7-9 PM). "
     "The weekly menu is available on the notifications page."),
    (_any("laundry"),
     "Laundry services are available on the ground floor. Operating hours: 8 AM to 8 PM. "
     "You can submit your clothes with your room number tag."),
    (_any("visitor", "guest"),
     "Visitors are allowed from 9 AM to 8 PM. All visitors must register at the reception desk."),
    (_any("rule", "regulation", "policy"),
     "Hostel rules include: no smoking/alcohol, maintaining silence during study hours (8-10 PM), "
     "and keeping your room clean. You can find the complete rulebook in the Settings section."),
    (_any("hi", "hello", "hey"), GREETING),
    (_any("thank"),
     "You're welcome! If you have any other questions, feel free to ask."),
]


def respond(query: str, name: Optional[str] = None) -> str:
    q = (query or "").lower()
    for matches, reply in RULES:
        if matches(q):
            return reply.format(name=name or "there") if reply is GREETING else reply
    return FALLBACK
