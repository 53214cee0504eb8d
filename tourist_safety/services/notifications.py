import logging

from flask import current_app
from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from ..extensions import socketio

logger = logging.getLogger(__name__)


def send_push_notification(title, body, data=None, topic=None, user_id=None):
    """Delivers a notification to a topic room or a single user's room over the socket server."""
    if topic:
        room = f'topic:{topic}'
    elif user_id:
        room = f'user:{user_id}'
    else:
        raise ValueError('A topic or a user_id is required')

    payload = {'title': title, 'body': body, 'data': data or {}}
    socketio.emit('notification', payload, to=room)
    logger.info('Push notification sent to %s: %s', room, title)
    return room


def maps_link(latitude, longitude):
    return f'https://www.google.com/maps?q={latitude},{longitude}'


def send_sms(to, body):
    """Sends an SMS with Twilio. Returns the message SID, or None when Twilio isn't configured."""
    cfg = current_app.config
    account_sid = cfg.get('TWILIO_ACCOUNT_SID')
    auth_token = cfg.get('TWILIO_AUTH_TOKEN')
    from_number = cfg.get('TWILIO_PHONE_NUMBER')

    if not all([account_sid, auth_token, from_number]):
        logger.warning('Twilio credentials not configured. Skipping SMS to %s', to)
        return None

    try:
        message = Client(account_sid, auth_token).messages.create(from_=from_number, body=body, to=to)
    except TwilioRestException as e:
        logger.error('Failed to send SMS via Twilio: %s', e)
        return None

    logger.info('SMS sent to %s (SID: %s)', to, message.sid)
    return message.sid
