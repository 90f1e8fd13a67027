"""Repository layer for the scheduling proposal engine.

Provides query and conditional-write methods for the scheduling entities:
- proposals: create_proposal, get_proposal, list_proposals, count_responders,
             get_slots, get_slot, get_respondents, get_respondent_by_user,
             confirm_if_open, cancel_if_unchanged, extend_if_unchanged,
             expire_overdue, set_confirmed_meeting, set_video_details
- responses: upsert_responses, get_responses_for_proposal,
             get_responses_for_slot, get_pending_respondents
- meetings: record_meeting, update_video_details
- notifications: insert_notifications, log_reminders
- spaces: get_space, get_membership, filter_member_ids, get_profiles
- integrations: get_active_calendar_connections, update_tokens, mark_error
"""
