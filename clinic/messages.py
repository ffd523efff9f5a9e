"""
Reply templates for the PinkHealth Clinic Intake Service

Every outbound text the conversation engine produces is built here so the
step handlers only decide *which* reply to send.
"""

from typing import Any, Iterable, List, Mapping, Sequence, Tuple
from urllib.parse import quote

from clinic.models import HEALTH_CONCERN_OPTIONS, Doctor, SlotChoice

CLINIC_NAME = "PinkHealth Clinic"
CLINIC_ADDRESS = "Sector 18, Noida - 201301"
CLINIC_PHONE = "+91-120-4567890"
MAPS_URL = "https://maps.google.com/?q=PinkHealth+Clinic+Sector+18+Noida"

POST_BOOKING_OPTIONS = """*Reply with option number:*
1. 📅 Add to Calendar
2. 🗺️ Get Directions
3. 📋 Pre-visit Instructions
4. 📅 Book Another Appointment
5. ✅ All Done"""

CANCEL_OPTIONS = """*Reply with option number:*
1. ❌ Yes, Cancel
2. 🔄 Reschedule Instead
3. ⬅️ Keep Appointment"""

RESCHEDULE_WINDOWS = """*Reply with option number:*
1. 📅 Tomorrow
2. 📅 This Week
3. 📅 Next Week
4. 📅 Choose Specific Date
5. 👨‍⚕️ Different Doctor"""


# ============================================================================
# Welcome menus
# ============================================================================

def _appointment_line(appointment: Mapping[str, Any]) -> str:
    return (
        f"👩‍⚕️ {appointment['doctor_name']} - {appointment['specialty']}\n"
        f"📅 {appointment['day_label']} ({appointment['date']}) at ⏰ {appointment['time']}"
    )


def welcome_single(appointment: Mapping[str, Any]) -> str:
    return f"""👋 Welcome back to {CLINIC_NAME}!

📅 **Your Upcoming Appointment:**
{_appointment_line(appointment)}
📍 {CLINIC_NAME}

What would you like to do?

*Reply with option number:*
1. ✅ Appointment Details
2. 🔄 Reschedule
3. ❌ Cancel Appointment
4. 🗺️ Get Directions
5. 📅 Book Another Appointment"""


def welcome_multiple(appointments: Sequence[Mapping[str, Any]]) -> str:
    listing = "\n\n".join(
        f"{index}️⃣ {_appointment_line(appointment)}"
        for index, appointment in enumerate(appointments, start=1)
    )
    return f"""👋 Welcome back to {CLINIC_NAME}!

📅 **Your Upcoming Appointments:**

{listing}

What would you like to do?

*Reply with option number:*
1. 📋 Manage Appointment 1
2. 📋 Manage Appointment 2
3. 📅 Book New Appointment
4. 🗺️ Get Directions"""


def welcome_returning(name: str) -> str:
    return f"""👋 Welcome back to {CLINIC_NAME}, {name}!

I see you've visited us before. Would you like to:

*Reply with option number:*
1. 📅 Book New Appointment
2. 🔄 Follow-up with Previous Doctor
3. 📋 View Past Appointments
4. 👨‍⚕️ Browse Our Doctors"""


def welcome_new() -> str:
    return f"""👋 Welcome to {CLINIC_NAME}!

I'm DocTime, your virtual assistant. I can help you book appointments with our doctors.

Are you booking for yourself or someone else?

*Reply with option number:*
1. 👤 For Myself
2. 👥 For Someone Else
3. ❓ I Have Questions"""


def invalid_welcome_option() -> str:
    return 'Please reply with a valid option number. Type "menu" to see all options again.'


def appointment_details(appointment: Mapping[str, Any]) -> str:
    return f"""📋 **Detailed Appointment Information**

🆔 **Booking ID:** {appointment['appointment_id']}
👨‍⚕️ **Doctor:** {appointment['doctor_name']}
🏥 **Specialty:** {appointment['specialty']}
📅 **Date:** {appointment['day_label']} ({appointment['date']})
⏰ **Time:** {appointment['time']}
💰 **Fee:** ₹{appointment['fee']}

📍 **Clinic Details:**
{CLINIC_NAME}
{CLINIC_ADDRESS}

📋 **Pre-visit Checklist:**
✅ Arrive 15 minutes early
✅ Bring photo ID proof
✅ Previous medical reports
✅ List of current medications

*Need to modify?* Type "reschedule" or "cancel\""""


def no_active_appointments() -> str:
    return "📋 You don't have any upcoming appointments. Would you like to book a new one? Type \"book\"."


# ============================================================================
# Booking flow
# ============================================================================

def patient_details_prompt() -> str:
    return """Please provide the patient's details:

👤 Full Name:
📞 Phone Number:
🎂 Age:
👥 Relationship to you:

Send them together, with the full name on the first line."""


def patient_details_ack(patient_name: str) -> str:
    return f"Thank you for providing the details. Let's proceed with booking for {patient_name}."


def health_concern_menu(intro: str = "What brings you to the clinic today?") -> str:
    options = "\n".join(f"{number}. {label}" for number, (label, _) in HEALTH_CONCERN_OPTIONS.items())
    return f"""{intro}

You can describe your symptoms or choose from common concerns:

*Reply with option number:*
{options}

*Or simply describe your symptoms in your own words.*"""


def triage_menu() -> str:
    return """No worries! Our General Medicine doctors can assess any health concern and refer you to specialists if needed.

Shall I book you with a General Medicine doctor?

*Reply with option number:*
1. ✅ Yes, General Medicine
2. 📞 Talk to Staff First
3. ⬅️ Show Me the Concerns Again"""


def _slot_lines(slots: Iterable[SlotChoice]) -> str:
    return "\n".join(f"{index}️⃣ {slot.display()}" for index, slot in enumerate(slots, start=1))


def recommendation(doctor: Doctor, slots: Sequence[SlotChoice]) -> str:
    return f"""Based on your concern, I recommend:

👨‍⚕️ **{doctor.name}** - {doctor.specialty}
⭐ {doctor.rating}/5 | 🩺 {doctor.experience} years
💰 Consultation Fee: ₹{doctor.fee}

📅 **Next Available Slots:**
{_slot_lines(slots)}

Which slot works for you?

*Reply with slot number (1, 2, or 3):*"""


def doctor_slots(doctor: Doctor, slots: Sequence[SlotChoice]) -> str:
    return f"""👨‍⚕️ **{doctor.name}** - {doctor.specialty}
⭐ {doctor.rating}/5 | 💰 ₹{doctor.fee}

📅 **Available Slots:**
{_slot_lines(slots)}

Select your preferred time:

*Reply with slot number (1, 2, or 3):*"""


def doctor_list(doctors: Sequence[Doctor]) -> str:
    lines = "\n".join(
        f"{index}. {doctor.name} - {doctor.specialty} | {doctor.experience}+ years ⭐{doctor.rating} | ₹{doctor.fee}"
        for index, doctor in enumerate(doctors, start=1)
    )
    return f"""👨‍⚕️ **Our Expert Doctors**

{lines}

*Reply with the doctor's number, or type their name*
Example: "Book Dr. Smith" 📱"""


def doctor_not_found() -> str:
    return "Sorry, I couldn't find that doctor. Reply with a number from the list or a doctor's name."


def invalid_slot() -> str:
    return "Please select a valid slot number (1, 2, or 3)"


def confirmation(doctor: Doctor, slot: SlotChoice, patient_name: str, phone: str) -> str:
    return f"""✅ **Confirm Your Appointment**

👨‍⚕️ Doctor: {doctor.name} - {doctor.specialty}
📅 Date & Time: {slot.display()} ({slot.date})
👤 Patient: {patient_name}
📞 Contact: {phone}
💰 Consultation Fee: ₹{doctor.fee}

📍 **{CLINIC_NAME}**
{CLINIC_ADDRESS}

Confirm booking?

*Reply with option number:*
1. ✅ Confirm & Book
2. ✏️ Edit Details
3. ❌ Cancel Booking"""


def invalid_confirmation() -> str:
    return """Please choose a valid option:

1. ✅ Confirm & Book
2. ✏️ Edit Details
3. ❌ Cancel Booking"""


def booking_abandoned() -> str:
    return '❌ Booking cancelled. Type "menu" to see other options.'


def booked(appointment: Mapping[str, Any], created: bool) -> str:
    header = (
        "🎉 **Appointment Booked Successfully!**"
        if created
        else "ℹ️ **You already have this appointment booked.**"
    )
    return f"""{header}

📋 **Confirmation Details:**
🆔 Booking ID: {appointment['appointment_id']}
👨‍⚕️ {appointment['doctor_name']} - {appointment['specialty']}
📅 {appointment['day_label']} at {appointment['time']} ({appointment['date']})

📱 **What's Next:**
- SMS confirmation sent to {appointment['phone']}
- Arrive 15 minutes early
- Bring valid ID and previous reports

💳 **Payment Link:** {appointment['payment_link']}

Need anything else?

{POST_BOOKING_OPTIONS}"""


# ============================================================================
# Post booking
# ============================================================================

def calendar_link(appointment: Mapping[str, Any], start_stamp: str, end_stamp: str) -> str:
    text = quote(f"Appointment with {appointment['doctor_name']}")
    details = quote(f"Appointment at {CLINIC_NAME}\nID: {appointment['appointment_id']}")
    location = quote(f"{CLINIC_NAME}, {CLINIC_ADDRESS}")
    return (
        "https://calendar.google.com/calendar/render?action=TEMPLATE"
        f"&text={text}&dates={start_stamp}/{end_stamp}&details={details}&location={location}"
    )


def add_to_calendar(appointment: Mapping[str, Any], link: str) -> str:
    return f"""📅 **Add to Calendar**

Click this link to add your appointment:
{link}

Or manually add:
📋 Event: Appointment with {appointment['doctor_name']}
📅 Date: {appointment['date']}
⏰ Time: {appointment['time']}
📍 Location: {CLINIC_NAME}, {CLINIC_ADDRESS}

{POST_BOOKING_OPTIONS}"""


def directions(footer: str = "") -> str:
    text = f"""🗺️ **{CLINIC_NAME} Location**

📍 **Address:**
{CLINIC_NAME}
{CLINIC_ADDRESS}
Uttar Pradesh, India

🚗 **How to Reach:**
• Metro: Noida Sector 18 Metro Station (500m walk)
• By Car: Parking available
• Auto/Cab: Show this address to driver

📞 **Contact:** {CLINIC_PHONE}

🕐 **Clinic Hours:**
Mon-Sat: 9:00 AM - 8:00 PM
Sunday: 10:00 AM - 6:00 PM

📱 **Google Maps:** {MAPS_URL}"""
    return f"{text}\n\n{footer}" if footer else text


def previsit_instructions(appointment: Mapping[str, Any]) -> str:
    return f"""📋 **Pre-visit Instructions**

⏰ **Arrival:**
• Arrive 15 minutes early for check-in
• Report to reception with booking ID {appointment['appointment_id']}

📄 **Documents to Bring:**
• Valid Photo ID (Aadhar/PAN/License)
• Previous medical reports (if any)
• Insurance card (if applicable)
• List of current medications

💳 **Payment Options:**
• Cash, Card, UPI accepted at clinic
• Online: {appointment['payment_link']}

📞 Questions? Call {CLINIC_PHONE}

{POST_BOOKING_OPTIONS}"""


def invalid_post_booking() -> str:
    return f"""❓ Please choose a valid option:

{POST_BOOKING_OPTIONS}

Or type "help" for assistance."""


def goodbye(appointment: Mapping[str, Any]) -> str:
    return f"""✅ **Thank you for choosing {CLINIC_NAME}!**

Your appointment is confirmed:
🆔 ID: {appointment['appointment_id']}
👨‍⚕️ {appointment['doctor_name']}
📅 {appointment['day_label']} at {appointment['time']}

📱 We'll send you a reminder before your appointment.

For any queries: {CLINIC_PHONE}
Or message "hi" anytime for assistance.

Take care! 🌟"""


# ============================================================================
# Reschedule / cancel
# ============================================================================

def reschedule_intro(appointment: Mapping[str, Any]) -> str:
    return f"""🔄 I'll help you reschedule your appointment.

📅 **Current Appointment:**
{_appointment_line(appointment)}

When would you prefer to reschedule?

{RESCHEDULE_WINDOWS}"""


def reschedule_slots(doctor_name: str, window: str, slots: Sequence[SlotChoice]) -> str:
    return f"""📅 **Available Slots {window} with {doctor_name}:**

{_slot_lines(slots)}

*Reply with slot number (1, 2, or 3):*
Or 4 for a specific date, 5 for a different doctor"""


def specific_date_prompt() -> str:
    return """📅 **Choose Specific Date**

Please send your preferred date in format:
DD/MM/YYYY

Example: 25/06/2026

I'll show you available slots for that date."""


def invalid_reschedule() -> str:
    return f"""Please select a valid option number or provide a date in DD/MM/YYYY format.

{RESCHEDULE_WINDOWS}"""


def invalid_date() -> str:
    return "That date isn't valid. Please send a future date in DD/MM/YYYY format, e.g. 25/06/2026."


def rescheduled(old: Mapping[str, Any], new: Mapping[str, Any]) -> str:
    return f"""✅ **Appointment Rescheduled!**

**Old Appointment:** ❌ Released
📅 {old['day_label']} ({old['date']}) at {old['time']}

**New Appointment:** ✅ Confirmed
👨‍⚕️ {new['doctor_name']}
📅 {new['day_label']} ({new['date']}) at ⏰ {new['time']}
🆔 {new['appointment_id']}

📱 Updated confirmation SMS sent!"""


def cancel_intro(appointment: Mapping[str, Any]) -> str:
    return f"""⚠️ **Cancel Appointment**

{_appointment_line(appointment)}

**Cancellation Policy:**
⏰ 24+ hours notice: No fee
⏰ Less than 24 hours: ₹100 fee
⏰ Same day: Full consultation fee

Are you sure you want to cancel?

{CANCEL_OPTIONS}"""


def invalid_cancel() -> str:
    return f"Please select a valid option:\n\n{CANCEL_OPTIONS}"


def cancelled(appointment: Mapping[str, Any], fee: int, policy: str) -> str:
    fee_line = f"₹{fee} ({policy})" if fee else f"None ({policy})"
    return f"""✅ **Appointment Cancelled**

📅 {appointment['doctor_name']} - {appointment['day_label']} at {appointment['time']}
💰 Cancellation fee: {fee_line}

**Refund Process:**
• Refund will be processed in 3-5 business days
• Amount will be credited to original payment method
• You'll receive SMS confirmation of refund

Would you like to book a new appointment? Type "book"

Or need assistance? Type "help\""""


def appointment_kept(appointment: Mapping[str, Any]) -> str:
    return f"""✅ **Appointment Kept**

📅 Your appointment remains confirmed:
{_appointment_line(appointment)}
📍 {CLINIC_NAME}

📋 **Reminders:**
• Arrive 15 minutes early
• Bring valid ID
• Bring previous medical reports

See you at the clinic! 🏥"""


# ============================================================================
# Global commands
# ============================================================================

def main_menu() -> str:
    return f"""📋 **{CLINIC_NAME} - Main Menu**

**Quick Actions:**
• Type "book" - Book new appointment
• Type "status" - Check your appointments
• Type "doctors" - View our doctors
• Type "directions" - Get clinic location

**Manage Appointments:**
• Type "reschedule" - Change appointment time
• Type "cancel" - Cancel appointment
• Type "history" - View past visits

**Information:**
• Type "fees" - Consultation charges
• Type "today" - Today's schedule
• Type "tomorrow" - Tomorrow's availability
• Type "help" - Talk to our staff

**Emergency:** Type "emergency" for immediate assistance

Just type any of the above commands or say "hi" to start fresh! 🌟"""


def appointment_status(name: str, appointments: Sequence[Mapping[str, Any]]) -> str:
    if not appointments:
        return no_active_appointments()
    listing = "\n\n".join(
        f"📅 **{a['day_label']}, {a['time']}** ({a['date']})\n👨‍⚕️ {a['doctor_name']} - {a['specialty']}\n🎫 {a['appointment_id']}"
        for a in appointments
    )
    return f"""📋 **Your Appointment Status - {name}**

**UPCOMING APPOINTMENTS:**

{listing}

*Need to reschedule?* Type "reschedule"
*Need to cancel?* Type "cancel\""""


def todays_schedule(name: str, own: Sequence[Mapping[str, Any]], open_slots: Sequence[Tuple[Doctor, str]]) -> str:
    mine = "\n".join(f"✅ {a['time']} - {a['doctor_name']} ({a['status']})" for a in own) or "No appointments today"
    available = "\n".join(f"🕐 {time} - {doctor.name}" for doctor, time in open_slots) or "No slots left today"
    return f"""📅 **Today's Schedule - {name}**

**Your Appointments:**
{mine}

**Clinic Status:**
🟢 Open: 9:00 AM - 8:00 PM

**Available Slots Today:**
{available}

Need to book? Type "book"
Questions? Type "help\""""


def tomorrow_availability(open_slots: Sequence[Tuple[Doctor, str]]) -> str:
    listing = "\n\n".join(
        f"👨‍⚕️ **{doctor.name}** ({doctor.specialty})\n🕘 {time}" for doctor, time in open_slots
    )
    return f"""📅 **Tomorrow's Availability**

**Available Doctors & Slots:**

{listing}

Ready to book? Type "book"
Need specific time? Type "help\""""


def appointment_history(name: str, appointments: Sequence[Mapping[str, Any]]) -> str:
    if not appointments:
        return f'📋 **Appointment History - {name}**\n\nNo visits on record yet. Type "book" to schedule your first appointment.'
    icons = {"confirmed": "✅", "cancelled": "❌"}
    listing = "\n\n".join(
        f"{icons.get(a['status'], '•')} **{a['date']}** at {a['time']}\n👨‍⚕️ {a['doctor_name']} - {a['specialty']}\n💰 Fee: ₹{a['fee']}"
        for a in appointments
    )
    return f"""📋 **Appointment History - {name}**

**RECENT VISITS:**

{listing}"""


def fee_structure(fees: Mapping[str, Tuple[int, int]]) -> str:
    lines: List[str] = []
    for specialty, (low, high) in fees.items():
        amount = f"₹{low}" if low == high else f"₹{low} - ₹{high}"
        lines.append(f"• **{specialty}:** {amount}")
    listing = "\n".join(lines)
    return f"""💰 **Consultation Charges**

{listing}

💳 **Payment Options:**
• Cash at clinic
• UPI/Card payment
• Online payment link

Ready to book? Type "book\""""


def staff_escalation(reason: str) -> str:
    return f"""📞 **Connecting you to our clinic staff...**

Your conversation history has been shared for better assistance.

*Estimated wait time: 2-3 minutes*
*Staff available: Monday-Saturday, 9 AM - 6 PM*

Reason: {reason}

A staff member will contact you shortly."""


def emergency() -> str:
    return f"""🚨 **MEDICAL EMERGENCY DETECTED** 🚨

**IMMEDIATE ACTIONS:**
📞 Call Emergency: 108 (India) or 911
🏥 Nearest Hospital: Apollo Hospital, Sector 26, Noida
📍 Address: Plot No 1, Sector 26, Noida - 201301
📞 Hospital: +91-120-4566999

**Our Staff is Being Notified**
📱 {CLINIC_NAME} Emergency: {CLINIC_PHONE}

**If Life-Threatening:**
• Call 108 immediately
• Don't wait for our response
• Go to nearest emergency room

Stay safe! Our team will contact you shortly."""


def apology() -> str:
    return "😔 Sorry, something went wrong on our side. Let's start again."


def invalid_reschedule_slot(count: int) -> str:
    return (
        f"Please reply with a slot number (1-{count}), send a new date in DD/MM/YYYY format, "
        "or reply 4 for a specific date, 5 for a different doctor."
    )
