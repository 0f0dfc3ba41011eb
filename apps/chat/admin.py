from django.contrib import admin

from .models import ChatConversation, ChatMessage


class ChatMessageInline(admin.TabularInline):
    model = ChatMessage
    extra = 0
    readonly_fields = ('role', 'content', 'tool_name', 'token_count', 'sequence', 'created_at')
    exclude = ('tenant', 'tool_call_id')
    can_delete = False


@admin.register(ChatConversation)
class ChatConversationAdmin(admin.ModelAdmin):
    list_display = ('title', 'tenant', 'user', 'status', 'message_count', 'last_message_at')
    list_filter = ('status', 'tenant')
    search_fields = ('title', 'user__email')
    inlines = [ChatMessageInline]
