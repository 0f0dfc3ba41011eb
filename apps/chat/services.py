import logging

from django.conf import settings
from django.core.exceptions import ValidationError

from apps.core.exceptions import NotFoundError
from apps.core.pipeline import audit_user, handler
from apps.tenants.context import get_current_tenant

from .models import DEFAULT_TITLE, ChatConversation, ChatMessage

logger = logging.getLogger(__name__)


def get_conversation(actor, conversation_id, include_deleted=False):
    """A conversation owned by `actor`; other users' conversations are not found."""
    qs = ChatConversation.objects.for_tenant(get_current_tenant()).filter(pk=conversation_id,
                                                                           user=audit_user(actor))
    if not include_deleted:
        qs = qs.exclude(status=ChatConversation.STATUS_DELETED)
    conversation = qs.first()
    if conversation is None:
        raise NotFoundError(resource='Conversation', key=conversation_id)
    return conversation


def list_conversations(actor, status=ChatConversation.STATUS_ACTIVE, limit=None):
    limit = limit or settings.CHAT_CONVERSATION_LIST_LIMIT
    return (ChatConversation.objects.for_tenant(get_current_tenant())
            .filter(user=audit_user(actor), status=status)
            .order_by('-last_message_at', '-created_at')[:limit])


def _require_user(actor):
    user = audit_user(actor)
    if user is None:
        raise ValidationError({'user': 'Chat is only available to tenant users.'})
    return user


@handler('StartConversation', permissions='chat.use')
def start_conversation(*, actor, title=None):
    user = _require_user(actor)
    conversation = ChatConversation(tenant=get_current_tenant(), user=user)
    conversation.update_title(title or DEFAULT_TITLE)
    conversation.save()
    return conversation


@handler('AddChatMessage', permissions='chat.use')
def add_message(*, actor, content, conversation_id=None, role=ChatMessage.ROLE_USER, tool_name='',
                tool_call_id='', token_count=None):
    """
    Append a message, starting a new conversation when no id is given.

    Archived conversations are reactivated by a new message.
    """
    user = _require_user(actor)
    if role == ChatMessage.ROLE_USER and not (content or '').strip():
        raise ValidationError({'content': 'Message cannot be empty.'})
    if conversation_id:
        conversation = get_conversation(user, conversation_id)
        if conversation.status == ChatConversation.STATUS_ARCHIVED:
            conversation.reactivate()
    else:
        conversation = ChatConversation.objects.create(tenant=get_current_tenant(), user=user)
    return conversation.add_message(role, content, tool_name=tool_name, tool_call_id=tool_call_id,
                                    token_count=token_count)


@handler('RenameConversation', permissions='chat.use')
def rename_conversation(*, actor, conversation_id, title):
    conversation = get_conversation(actor, conversation_id)
    conversation.update_title(title)
    conversation.save(update_fields=['title', 'updated_at'])
    return conversation


@handler('ArchiveConversation', permissions='chat.use')
def archive_conversation(*, actor, conversation_id):
    conversation = get_conversation(actor, conversation_id)
    conversation.archive()
    return conversation


@handler('ReactivateConversation', permissions='chat.use')
def reactivate_conversation(*, actor, conversation_id):
    conversation = get_conversation(actor, conversation_id, include_deleted=True)
    conversation.reactivate()
    return conversation


@handler('DeleteConversation', permissions='chat.use')
def delete_conversation(*, actor, conversation_id):
    conversation = get_conversation(actor, conversation_id)
    conversation.mark_deleted()
    logger.info("Conversation %s deleted by %s", conversation.pk, conversation.user.email)
    return conversation
