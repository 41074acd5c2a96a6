"""Contact tools."""

from caselli.db.database import unit_of_work
from caselli.db.repositories import ContactsRepository, contact_to_dict
from caselli.tools.executor import ToolContext, ToolHandler, ToolOutcome, UndoAction
from caselli.tools.inputs import AddContactInput, SearchContactsInput, UpdateContactInput


class SearchContacts(ToolHandler):
    input_model = SearchContactsInput
    task_type = "contact_lookup"

    async def run(self, params: SearchContactsInput, ctx: ToolContext) -> ToolOutcome:
        async with unit_of_work(ctx.session_factory) as session:
            contacts = await ContactsRepository(session).search(
                ctx.owner_id, params.query, contact_type=params.contact_type
            )
            items = [contact_to_dict(contact) for contact in contacts]

        target = f"'{params.query}'" if params.query else "all contacts"
        return self.outcome(
            {"contacts": items, "count": len(items)},
            f"Searched contacts for {target} ({len(items)} found)",
        )


class AddContact(ToolHandler):
    input_model = AddContactInput
    task_type = "contact_created"

    async def run(self, params: AddContactInput, ctx: ToolContext) -> ToolOutcome:
        fields = params.model_dump(exclude_none=True)
        fields["contact_type"] = params.contact_type or "lead"

        async with unit_of_work(ctx.session_factory) as session:
            contact = await ContactsRepository(session).create(ctx.owner_id, **fields)
            data = contact_to_dict(contact)

        undo = UndoAction(
            type="delete_contact",
            entity_id=data["id"],
            label=f"Added {params.full_name}",
        )
        return self.outcome({"contact": data}, f"Added contact {params.full_name}", undo)


class UpdateContact(ToolHandler):
    """Partial update. Contact edits are not undoable."""

    input_model = UpdateContactInput
    task_type = "contact_updated"

    async def run(self, params: UpdateContactInput, ctx: ToolContext) -> ToolOutcome:
        changes = params.changes()
        if not changes:
            return self.failure("No fields to update were provided")

        async with unit_of_work(ctx.session_factory) as session:
            contacts = ContactsRepository(session)
            contact = await contacts.get(ctx.owner_id, params.contact_id)
            if contact is None:
                return self.failure("Contact not found")
            await contacts.update(contact, changes)
            data = contact_to_dict(contact)

        return self.outcome(
            {"contact": data, "updated_fields": sorted(changes)},
            f"Updated contact {data['full_name']}",
        )
