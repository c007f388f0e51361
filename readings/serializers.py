"""
JSON shapes for sessions and reader profiles (snake_case, money as "12.34").
"""
from common.money import dollars_to_cents, format_cents


def user_summary(user) -> dict:
    return {"id": user.pk, "name": user.name, "email": user.email}


def session_summary(session) -> dict:
    data = {
        "id": session.pk,
        "client": user_summary(session.client),
        "reader": user_summary(session.reader),
        "session_type": session.session_type,
        "status": session.status,
        "start_time": session.start_time.isoformat() if session.start_time else None,
        "end_time": session.end_time.isoformat() if session.end_time else None,
        "rate_per_minute": format_cents(session.rate_per_minute_cents),
        "total_minutes": session.total_minutes,
        "total_amount": format_cents(session.total_amount_cents),
        "created_at": session.created_at.isoformat(),
    }
    if session.status == session.STATUS_COMPLETED:
        data.update({
            "reader_earnings": format_cents(session.reader_earnings_cents),
            "platform_fee": format_cents(session.platform_fee_cents),
            "is_partial_payment": session.is_partial_payment,
        })
    return data


def reader_profile(profile) -> dict:
    return {
        "id": profile.user_id,
        "display_name": profile.display_name,
        "bio": profile.bio,
        "specialties": profile.specialties or [],
        "years_experience": profile.years_experience,
        "profile_image": profile.profile_image,
        "rates": {
            "chat": format_cents(dollars_to_cents(profile.chat_rate_per_min)),
            "phone": format_cents(dollars_to_cents(profile.phone_rate_per_min)),
            "video": format_cents(dollars_to_cents(profile.video_rate_per_min)),
        },
        "is_online": profile.is_online,
        "is_available": profile.is_available,
        "rating": str(profile.rating) if profile.rating is not None else None,
        "total_reviews": profile.total_reviews,
        "total_sessions": profile.total_sessions,
    }
