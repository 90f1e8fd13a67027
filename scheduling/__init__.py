"""Scheduling proposal engine — service operations.

- proposals: create_proposal, list_proposals, get_responses
- responses: submit_responses
- confirmation: is_slot_confirmable, blocking_respondents, confirm_slot
- lifecycle: cancel_proposal, extend_proposal, cancel_or_extend,
             expire_overdue_proposals
- reminders: send_reminders
- suggestions: suggest_slots, get_valid_access_token
- availability: compute_available_slots, format_slot_label
- auth: ActorContext, SpaceMembershipAuthorizer, ensure_authorized
"""
