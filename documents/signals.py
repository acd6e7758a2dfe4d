from django.db.models.signals import pre_save
from django.dispatch import receiver

from .exceptions import ImmutableRecordError
from .models import Document


@receiver(pre_save, sender=Document)
def guard_document_identifiers(sender, instance, raw=False, update_fields=None, **kwargs):
    """Token, barcode and reference number never change once issued."""
    if raw or instance._state.adding:
        return
    if update_fields is not None and not set(update_fields) & set(Document.IDENTIFIER_FIELDS):
        return
    try:
        old = Document.objects.only(*Document.IDENTIFIER_FIELDS).get(pk=instance.pk)
    except Document.DoesNotExist:
        return
    changed = [
        name
        for name in Document.IDENTIFIER_FIELDS
        if getattr(old, name) != getattr(instance, name)
    ]
    if changed:
        raise ImmutableRecordError(
            f"Document {instance.pk}: identifiers are immutable ({', '.join(changed)})"
        )
