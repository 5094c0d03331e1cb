"""
Tests for swap flow reconstruction and the rest of the optimization passes
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from swap_recorder.models import (
    ActionKind, SwapActionKind, EndpointPurpose, RiskLevel, SwapComplexity,
    RecordedAction, ElementSnapshot, NetworkRequest, NetworkResponse, Recording, WalletAction,
)
from swap_recorder.optimizer import (
    DataOptimizer, format_report, compression_ratio, classify_button, classify_endpoint, is_amount_field,
)


def click(selector, text, timestamp, **element_fields):
    return RecordedAction(
        id=f"click-{selector}-{timestamp}",
        kind=ActionKind.CLICK,
        timestamp=timestamp,
        selector=selector,
        element=ElementSnapshot(tag=element_fields.pop('tag', 'button'), text=text, **element_fields),
    )


def type_into(selector, value, timestamp, amount=False, **element_fields):
    return RecordedAction(
        id=f"input-{selector}-{timestamp}",
        kind=ActionKind.INPUT,
        timestamp=timestamp,
        selector=selector,
        value=value,
        element=ElementSnapshot(tag='input', value=value, **element_fields),
        is_amount_field=amount,
    )


def make_recording(actions=(), requests=(), url='https://dex.example.org/trade', wallet_actions=()):
    return Recording(
        id='rec-1',
        name='test',
        url=url,
        created_at='2024-01-01T00:00:00',
        duration=7000,
        actions=tuple(actions),
        network_requests=tuple(requests),
        wallet_actions=tuple(wallet_actions),
    )


def get(url, method='GET', headers=None, response=None):
    return NetworkRequest(id=url, timestamp=0, url=url, method=method, headers=headers or {}, response=response)


class TestSwapFlowExample:
    """MAX / amount / Approve / Swap / duplicate Swap"""

    def setup_method(self):
        self.recording = make_recording([
            click('#max-btn', 'MAX', 100),
            type_into('#amount', '10', 200, amount=True),
            click('button.approve', 'Approve', 5100),
            click('button.swap', 'Swap', 6200),
            click('button.swap', 'Swap', 6250),
        ])
        self.optimized = DataOptimizer(self.recording).optimize()

    def test_flow_steps(self):
        """Three steps in time order"""
        flow = self.optimized.swap_flow
        assert [step.action for step in flow] == [
            SwapActionKind.INPUT_AMOUNT, SwapActionKind.APPROVE, SwapActionKind.CLICK_SWAP,
        ]
        assert flow[0].value == '10'
        assert [step.timestamp for step in flow] == [200, 5100, 6200]
        assert [step.id for step in flow] == [0, 1, 2]

    def test_summary(self):
        """Duplicate swap click is counted and the swap is detected"""
        summary = self.optimized.summary
        assert summary.duplicates_removed == 1
        assert summary.swap_detected is True
        assert summary.original_actions == 5
        assert summary.optimized_actions == 3
        assert summary.compression_ratio == pytest.approx(0.4)

    def test_essential_selectors(self):
        """Selectors harvested from the flow"""
        selectors = self.optimized.essential_selectors
        assert selectors['amountInput'] == '#amount'
        assert selectors['approveButton'] == 'button.approve'
        assert selectors['swapButton'] == 'button.swap'


class TestDeduplication:
    """Deduplication window"""

    def test_burst_keeps_first(self):
        """Every repeat inside the window of the kept record is dropped"""
        actions = [click('#a', 'A', t) for t in (0, 300, 900, 1000)]
        kept, removed = DataOptimizer(make_recording(actions)).remove_duplicates(actions)
        assert [a.timestamp for a in kept] == [0]
        assert removed == 3

    def test_outside_window_becomes_new_reference(self):
        """A record past the window is kept and moves the reference point"""
        actions = [click('#a', 'A', t) for t in (0, 1001, 1800, 2900)]
        kept, removed = DataOptimizer(make_recording(actions)).remove_duplicates(actions)
        assert [a.timestamp for a in kept] == [0, 1001, 2900]
        assert removed == 1

    def test_different_keys_are_independent(self):
        """Same time, different target"""
        actions = [click('#a', 'A', 0), click('#b', 'B', 10), type_into('#a', '1', 20)]
        kept, removed = DataOptimizer(make_recording(actions)).remove_duplicates(actions)
        assert len(kept) == 3
        assert removed == 0

    def test_key_falls_back_to_url(self):
        """Navigations keyed by url"""
        actions = [
            RecordedAction(id='n1', kind=ActionKind.NAVIGATE, timestamp=0, url='https://a'),
            RecordedAction(id='n2', kind=ActionKind.NAVIGATE, timestamp=100, url='https://b'),
            RecordedAction(id='n3', kind=ActionKind.NAVIGATE, timestamp=200, url='https://a'),
        ]
        kept, removed = DataOptimizer(make_recording(actions)).remove_duplicates(actions)
        assert [a.id for a in kept] == ['n1', 'n2']
        assert removed == 1


class TestSwapFlowReconstruction:
    """Token selection, amounts and buttons"""

    def test_ids_follow_time_order(self):
        """Out of order input still yields contiguous ids sorted by time"""
        recording = make_recording([
            click('button.swap', 'Swap', 5000),
            type_into('#amount', '3', 100, amount=True),
            click('button.approve', 'Approve', 2500),
        ])
        flow = DataOptimizer(recording).optimize().swap_flow
        assert [step.id for step in flow] == [0, 1, 2]
        assert [step.timestamp for step in flow] == [100, 2500, 5000]

    def test_token_direction_defaults_to_order(self):
        """Without cues the first selection is FROM and later ones TO"""
        recording = make_recording([
            click('#token-a', 'ETH', 100, class_name='token-button'),
            click('#token-b', 'USDC', 3000, class_name='token-button'),
        ])
        flow = DataOptimizer(recording).optimize().swap_flow
        assert [(step.action, step.value) for step in flow] == [
            (SwapActionKind.SELECT_FROM, 'ETH'),
            (SwapActionKind.SELECT_TO, 'USDC'),
        ]
        assert flow[0].metadata.token_symbol == 'ETH'

    def test_token_direction_from_nearby_cue(self):
        """A neighbouring 'receive' label makes the first selection TO"""
        recording = make_recording([
            type_into('#output', '', 100, placeholder='You receive'),
            click('#token-b', 'DAI', 200, class_name='token-select'),
        ])
        flow = DataOptimizer(recording).optimize().swap_flow
        assert len(flow) == 1
        assert flow[0].action == SwapActionKind.SELECT_TO
        assert flow[0].value == 'DAI'

    def test_direction_cues_match_whole_words(self):
        """'Customize' does not count as a 'to' cue"""
        recording = make_recording([
            click('#settings', 'Customize', 100, tag='div'),
            click('#token-a', 'WETH', 200, class_name='token-select'),
        ])
        flow = DataOptimizer(recording).optimize().swap_flow
        assert flow[0].action == SwapActionKind.SELECT_FROM

    def test_token_from_attributes(self):
        """Symbol taken from a token attribute when the text has none"""
        recording = make_recording([
            click('#pick', 'Select', 100, class_name='token-select',
                  attributes={'data-token-address': '0xabcdef1234'}),
        ])
        flow = DataOptimizer(recording).optimize().swap_flow
        assert flow[0].value == '0XABCD'
        assert flow[0].metadata.token_address == '0xabcdef1234'

    def test_token_click_without_symbol_is_skipped(self):
        """No extractable symbol, no flow step"""
        recording = make_recording([click('#open', 'Select a token', 100)])
        assert DataOptimizer(recording).optimize().swap_flow == ()

    def test_amount_inputs_merge_within_window(self):
        """Typing within 2s updates the pending amount step"""
        recording = make_recording([
            type_into('#amount', '1', 100, amount=True),
            type_into('#amount', '10', 1500, amount=True),
            type_into('#amount', '100', 3000, amount=True),
        ])
        flow = DataOptimizer(recording).optimize().swap_flow
        assert [(step.timestamp, step.value) for step in flow] == [(100, '10'), (3000, '100')]
        assert flow[0].metadata.amount == '10'

    def test_amount_metadata_from_attributes(self):
        """Price and slippage hints read from the input attributes"""
        recording = make_recording([
            type_into('#amount', '5', 100, amount=True,
                      attributes={'data-price': '1850.2', 'data-slippage': '0.5'}),
        ])
        metadata = DataOptimizer(recording).optimize().swap_flow[0].metadata
        assert metadata.amount == '5'
        assert metadata.price == '1850.2'
        assert metadata.slippage == '0.5'

    def test_one_step_per_record(self):
        """Overlapping keywords resolve to a single step"""
        recording = make_recording([click('button.go', 'Confirm Swap', 100)])
        flow = DataOptimizer(recording).optimize().swap_flow
        assert [step.action for step in flow] == [SwapActionKind.CONFIRM]

    def test_no_swap_detected(self):
        """Plain navigation produces an empty flow"""
        recording = make_recording([click('#home', 'Home', 100, tag='a')])
        optimized = DataOptimizer(recording).optimize()
        assert optimized.swap_flow == ()
        assert optimized.summary.swap_detected is False


class TestClassifiers:
    """Keyword classifiers"""

    @pytest.mark.parametrize('text,expected', [
        ('Approve USDC', SwapActionKind.APPROVE),
        ('Approve and swap', SwapActionKind.APPROVE),
        ('Confirm swap', SwapActionKind.CONFIRM),
        ('Execute', SwapActionKind.CONFIRM),
        ('Swap', SwapActionKind.CLICK_SWAP),
        ('Trade now', SwapActionKind.CLICK_SWAP),
        ('MAX', None),
    ])
    def test_button_precedence(self, text, expected):
        """APPROVE, then CONFIRM, then CLICK_SWAP"""
        assert classify_button(click('#b', text, 0)) == expected

    def test_amount_field_signals(self):
        """Numeric type and inputmode count, a plain text type does not"""
        assert is_amount_field(type_into('#a', '1', 0, type='number'))
        assert is_amount_field(type_into('#a', '1', 0, attributes={'inputmode': 'decimal'}))
        assert is_amount_field(type_into('#a', '1', 0, placeholder='0.0'))
        assert is_amount_field(type_into('#a', '1', 0, class_name='swap-input'))
        assert not is_amount_field(type_into('#a', '1', 0, type='text'))

    @pytest.mark.parametrize('url,expected', [
        ('https://api.example.com/v1/quote?amount=1', EndpointPurpose.QUOTE),
        ('https://api.example.com/swap/quote', EndpointPurpose.QUOTE),
        ('https://api.example.com/v1/swap', EndpointPurpose.SWAP),
        ('https://api.example.com/allowance', EndpointPurpose.APPROVE),
        ('https://swap.example.com/api/tokens', EndpointPurpose.TOKEN_LIST),
        ('https://api.example.com/balances/0xabc', EndpointPurpose.BALANCE),
        ('https://api.example.com/gas', EndpointPurpose.GAS),
        ('https://api.example.com/health', EndpointPurpose.OTHER),
    ])
    def test_endpoint_purpose(self, url, expected):
        """Purpose by path keyword priority"""
        assert classify_endpoint(url) == expected

    def test_compression_ratio_sentinel(self):
        """Zero original actions gives the sentinel"""
        assert compression_ratio(0, 0) == 0.0
        assert compression_ratio(4, 1) == pytest.approx(0.75)


class TestApiEndpoints:
    """Endpoint table"""

    def test_query_variants_collapse(self):
        """Query-only variants are one endpoint"""
        recording = make_recording(requests=[get('https://x/api/quote?x=1'), get('https://x/api/quote?y=2')])
        endpoints = DataOptimizer(recording).optimize().api_endpoints
        assert len(endpoints) == 1
        assert endpoints[0].url == 'https://x/api/quote'
        assert endpoints[0].purpose == EndpointPurpose.QUOTE
        assert endpoints[0].params == {'x': '1'}

    def test_method_is_part_of_identity(self):
        """GET and POST on the same url stay separate"""
        recording = make_recording(requests=[get('https://x/api/swap'), get('https://x/api/swap', method='POST')])
        assert len(DataOptimizer(recording).optimize().api_endpoints) == 2

    def test_headers_masked(self):
        """Allow-listed headers only, secrets masked"""
        recording = make_recording(requests=[get('https://x/api/quote', headers={
            'Authorization': 'Bearer abc',
            'x-api-key': 'k',
            'content-type': 'application/json',
            'cookie': 'session=1',
        })])
        headers = DataOptimizer(recording).optimize().api_endpoints[0].headers
        assert headers == {
            'Authorization': '***MASKED***',
            'x-api-key': '***MASKED***',
            'content-type': 'application/json',
        }

    def test_response_pattern(self):
        """Attached response fills the pattern"""
        response = NetworkResponse(status=200, headers={'Content-Type': 'application/json'})
        recording = make_recording(requests=[
            get('https://x/api/quote', response=response),
            get('https://x/api/gas'),
        ])
        first, second = DataOptimizer(recording).optimize().api_endpoints
        assert first.response_pattern == {'has_response': True, 'status_code': 200, 'content_type': 'application/json'}
        assert second.response_pattern == {'has_response': False, 'status_code': None, 'content_type': None}


class TestDexClassification:
    """Advisory DEX guess"""

    def test_session_url_match(self):
        """Uniswap by session url"""
        recording = make_recording(url='https://app.uniswap.org/swap')
        classification = DataOptimizer(recording).optimize().classification
        assert classification.dex_type == 'Uniswap'
        assert classification.complexity == SwapComplexity.COMPLEX
        assert classification.estimated_success_rate == 95
        assert classification.risk_level == RiskLevel.HIGH
        assert classification.matched is True

    def test_api_host_match(self):
        """1inch through an observed endpoint"""
        recording = make_recording(requests=[get('https://api.1inch.dev/swap/v6.0/1/quote')])
        summary = DataOptimizer(recording).optimize().summary
        assert summary.dex_type == '1inch'
        assert summary.swap_complexity == SwapComplexity.SIMPLE

    def test_unknown(self):
        """Minimal confidence fallback"""
        classification = DataOptimizer(make_recording()).optimize().classification
        assert classification.dex_type == 'Unknown DEX'
        assert classification.complexity == SwapComplexity.SIMPLE
        assert classification.estimated_success_rate == 0
        assert classification.risk_level == RiskLevel.LOW
        assert classification.matched is False


class TestOptimizerOutput:
    """Aggregate output"""

    def test_empty_recording(self):
        """Total on empty input"""
        optimized = DataOptimizer(make_recording()).optimize()
        assert optimized.swap_flow == ()
        assert optimized.api_endpoints == ()
        assert optimized.essential_selectors == {}
        assert optimized.summary.compression_ratio == 0.0
        assert optimized.summary.duplicates_removed == 0

    def test_first_selector_wins(self):
        """Later swap buttons do not overwrite the first"""
        recording = make_recording([
            click('#swap-1', 'Swap', 100),
            click('#swap-2', 'Swap', 4000),
        ])
        assert DataOptimizer(recording).optimize().essential_selectors['swapButton'] == '#swap-1'

    def test_wallet_actions_passed_through(self):
        """Wallet projection is carried into the output"""
        wallet = (WalletAction(timestamp=10, method='eth_requestAccounts'),)
        optimized = DataOptimizer(make_recording(wallet_actions=wallet)).optimize()
        assert optimized.wallet_actions == wallet

    def test_report(self):
        """Report lists steps and endpoints"""
        recording = make_recording(
            [type_into('#amount', '10', 200, amount=True), click('button.swap', 'Swap', 6200)],
            requests=[get('https://x/api/quote?x=1')],
        )
        report = format_report(DataOptimizer(recording).optimize())
        assert 'INPUT_AMOUNT (10)' in report
        assert 'CLICK_SWAP' in report
        assert '[GET] quote: https://x/api/quote' in report
        assert 'Compression ratio:  0.0%' in report
