"""Onboarding dialogue: the flow is a pure reducer, so no storage or messenger here."""
from typing import List, Tuple

from cemtem.agent.conversation_flow import (
    CEMENT_TYPES,
    ConversationFlow,
    WELCOME_MESSAGE,
    parse_multi_choice,
)
from cemtem.schemas.conversation import ConversationContext, ConversationStep as Step, FlowAction, FlowResponse
from cemtem.schemas.messaging import Channel

flow = ConversationFlow()


def drive(inputs: List[str], channel: Channel = Channel.WEB, chat_id: str = "chat-1") -> Tuple[ConversationContext, List[FlowResponse]]:
    """Feed inputs one by one, carrying step and data forward like the router does."""
    context = ConversationContext(channel=channel, chat_id=chat_id)
    responses = []
    for text in inputs:
        response = flow.process_message(context, text)
        responses.append(response)
        context = ConversationContext(channel=channel, chat_id=chat_id, step=response.next_step, data=response.data)
    return context, responses


def _set_fields(response: FlowResponse) -> set:
    return {k for k, v in response.data.model_dump().items() if v not in (None, [])}


def test_start_from_empty_session():
    context, [response] = drive(["hello"])
    assert response.message == WELCOME_MESSAGE
    assert response.next_step == Step.USER_TYPE
    assert response.action is None
    assert [b.data for row in response.keyboard for b in row] == ["1", "2"]


def test_start_twice_discards_everything():
    context, _ = drive(["/start", "1", "1", "2"])
    assert context.step == Step.BUYER_CEMENT_TYPES
    assert context.data.cement_company == "UltraTech"

    first = flow.process_message(context, "/start")
    second = flow.process_message(
        ConversationContext(channel=context.channel, chat_id=context.chat_id, step=first.next_step, data=first.data),
        "/start",
    )
    assert first.message == second.message == WELCOME_MESSAGE
    assert first.next_step == second.next_step == Step.USER_TYPE
    assert first.data.model_dump() == second.data.model_dump()
    assert first.data.material is None
    assert first.data.cement_company is None


def test_buyer_cement_inquiry_fields():
    context, responses = drive(["/start", "1", "1", "2", "2", "Guwahati", "50 bags", "9876543210"])
    final = responses[-1]

    assert final.next_step == Step.COMPLETED
    assert final.action == FlowAction.CREATE_INQUIRY
    assert final.data.material == "cement"
    assert final.data.cement_company == "UltraTech"
    assert final.data.cement_types == ["OPC Grade 43"]
    assert final.data.city == "Guwahati"
    assert final.data.quantity == "50 bags"
    assert final.data.phone == "9876543210"
    # emitted exactly once, at the terminal transition
    assert [r.action for r in responses[:-1]] == [None] * (len(responses) - 1)


def test_data_never_loses_keys_until_completion():
    _, responses = drive(["/start", "1", "3", "1", "1,4", "3", "5,9", "shillong", "100 bags", "+91 98765 43210"])
    for before, after in zip(responses[1:], responses[2:]):
        assert _set_fields(before) <= _set_fields(after)
    assert responses[-1].data.tmt_sizes == ["12mm", "24mm"]
    assert responses[-1].data.city == "Shillong"


def test_invalid_selection_reprompts_same_step():
    context, _ = drive(["/start", "1"])
    response = flow.process_message(context, "7")
    assert response.next_step == Step.BUYER_MATERIAL
    assert response.data == context.data
    assert "1 for Cement" in response.message


def test_multi_select_drops_out_of_range_indices():
    assert parse_multi_choice("2, 99, 0, 2, x", CEMENT_TYPES) == ["OPC Grade 43"]

    context, _ = drive(["/start", "1", "1", "1"])
    response = flow.process_message(context, "42, 99")
    assert response.next_step == Step.BUYER_CEMENT_TYPES


def test_other_cement_type_asks_for_custom_text():
    context, responses = drive(["/start", "1", "1", "7", "2,7"])
    assert context.step == Step.BUYER_CEMENT_CUSTOM
    assert context.data.cement_types == ["OPC Grade 43"]

    response = flow.process_message(context, "White Cement")
    assert response.data.cement_types == ["OPC Grade 43", "White Cement"]
    assert response.next_step == Step.BUYER_CITY


def test_telegram_buyer_picks_city_then_locality():
    context, responses = drive(["/start", "1", "2", "1", "5"], channel=Channel.TELEGRAM)
    assert context.step == Step.BUYER_CITY_SELECT
    assert "bcity_guwahati" in [b.data for row in responses[-1].keyboard for b in row]

    context, _ = drive(["/start", "1", "2", "1", "5", "bcity_guwahati", "bloc_ganeshguri"], channel=Channel.TELEGRAM)
    assert context.step == Step.BUYER_QUANTITY
    assert context.data.city == "Ganeshguri, Guwahati"
    assert context.data.city_id == "guwahati"
    assert context.data.locality_id == "ganeshguri"


def test_locality_without_city_goes_back_to_city_select():
    context = ConversationContext(channel=Channel.TELEGRAM, chat_id="7", step=Step.BUYER_LOCALITY_SELECT)
    response = flow.process_message(context, "bloc_beltola")
    assert response.next_step == Step.BUYER_CITY_SELECT


def test_web_location_pair_and_free_text():
    context, _ = drive(["/start", "1", "2", "1", "5", "guwahati:dispur"])
    assert context.data.city == "Dispur, Guwahati"

    context, _ = drive(["/start", "1", "2", "1", "5", "new delhi"])
    assert context.data.city == "New Delhi"

    context, _ = drive(["/start", "1", "2", "1", "5"])
    response = flow.process_message(context, "atlantis:downtown")
    assert response.next_step == Step.BUYER_CITY


def test_invalid_phone_is_rejected():
    context, _ = drive(["/start", "1", "1", "1", "1", "Tezpur", "20 bags"])
    response = flow.process_message(context, "12345")
    assert response.next_step == Step.BUYER_PHONE
    assert response.action is None


def test_vendor_registration_on_telegram():
    _, responses = drive(
        ["/start", "2", "Brahmaputra Traders", "9876500000", "vcity_guwahati", "vloc_beltola", "vmat_both"],
        channel=Channel.TELEGRAM,
    )
    final = responses[-1]
    assert final.action == FlowAction.REGISTER_VENDOR
    assert final.next_step == Step.COMPLETED
    assert final.data.company == "Brahmaputra Traders"
    assert final.data.city == "Beltola, Guwahati"
    assert final.data.materials == ["cement", "tmt"]
    assert "RATE: 350 per bag" in final.message


def test_vendor_materials_rejects_unknown_option():
    context, _ = drive(["/start", "2", "Acme", "9876500000", "Tezpur"])
    assert context.step == Step.VENDOR_MATERIALS
    response = flow.process_message(context, "4")
    assert response.next_step == Step.VENDOR_MATERIALS
    assert response.action is None
