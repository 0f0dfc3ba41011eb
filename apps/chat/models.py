import re

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

from apps.core.models import TenantAwareModel
from apps.tenants.managers import TenantAwareManager

DEFAULT_TITLE = 'New Conversation'
TITLE_MAX_LENGTH = 100


def title_from_content(content):
    """First sentence of `content`, shortened to 47 characters plus '...' past 50."""
    parts = [part for part in re.split(r'[.?!]', content or '') if part]
    first = parts[0].strip() if parts else (content or '').strip()
    if len(first) > 50:
        return first[:47] + '...'
    return first


class ChatConversation(TenantAwareModel):
    STATUS_ACTIVE = 'Active'
    STATUS_ARCHIVED = 'Archived'
    STATUS_DELETED = 'Deleted'
    STATUS_CHOICES = [(s, s) for s in (STATUS_ACTIVE, STATUS_ARCHIVED, STATUS_DELETED)]

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='chat_conversations')
    title = models.CharField(max_length=TITLE_MAX_LENGTH, default=DEFAULT_TITLE)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    message_count = models.PositiveIntegerField(default=0)
    total_tokens_used = models.PositiveIntegerField(default=0)
    last_message_at = models.DateTimeField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TenantAwareManager()

    class Meta:
        ordering = ['-last_message_at', '-created_at']
        indexes = [
            models.Index(fields=['tenant', 'user', 'status']),
        ]

    def __str__(self):
        return self.title

    def add_message(self, role, content, tool_name='', tool_call_id='', token_count=None):
        if role not in dict(ChatMessage.ROLE_CHOICES):
            raise ValidationError({'role': f'Unknown message role: {role}'})
        if self.status == self.STATUS_DELETED:
            raise ValidationError({'conversation': 'Cannot add messages to a deleted conversation.'})
        message = ChatMessage.objects.create(
            tenant_id=self.tenant_id,
            conversation=self,
            role=role,
            content=content or '',
            tool_name=tool_name or '',
            tool_call_id=tool_call_id or '',
            token_count=token_count,
            sequence=self.message_count,
        )
        self.message_count += 1
        self.last_message_at = message.created_at
        if token_count:
            self.total_tokens_used += token_count
        if self.title == DEFAULT_TITLE and role == ChatMessage.ROLE_USER and (content or '').strip():
            self.update_title(title_from_content(content))
        self.save()
        return message

    def update_title(self, title):
        title = (title or '').strip()
        if not title:
            raise ValidationError({'title': 'Title cannot be empty.'})
        self.title = title[:TITLE_MAX_LENGTH]

    def archive(self):
        self.status = self.STATUS_ARCHIVED
        self.save(update_fields=['status', 'updated_at'])

    def reactivate(self):
        if self.status == self.STATUS_DELETED:
            raise ValidationError({'status': 'Cannot reactivate a deleted conversation.'})
        self.status = self.STATUS_ACTIVE
        self.save(update_fields=['status', 'updated_at'])

    def mark_deleted(self):
        self.status = self.STATUS_DELETED
        self.save(update_fields=['status', 'updated_at'])


class ChatMessage(TenantAwareModel):
    ROLE_USER = 'User'
    ROLE_ASSISTANT = 'Assistant'
    ROLE_SYSTEM = 'System'
    ROLE_TOOL = 'Tool'
    ROLE_CHOICES = [(r, r) for r in (ROLE_USER, ROLE_ASSISTANT, ROLE_SYSTEM, ROLE_TOOL)]

    conversation = models.ForeignKey(ChatConversation, on_delete=models.CASCADE, related_name='messages')
    role = models.CharField(max_length=10, choices=ROLE_CHOICES)
    content = models.TextField(blank=True)
    tool_name = models.CharField(max_length=100, blank=True)
    tool_call_id = models.CharField(max_length=100, blank=True)
    token_count = models.PositiveIntegerField(null=True, blank=True)
    sequence = models.PositiveIntegerField()
    created_at = models.DateTimeField(default=timezone.now)

    objects = TenantAwareManager()

    class Meta:
        ordering = ['conversation', 'sequence']
        constraints = [
            models.UniqueConstraint(fields=['conversation', 'sequence'], name='unique_chat_message_sequence'),
        ]

    def __str__(self):
        return f"{self.role} #{self.sequence}"
