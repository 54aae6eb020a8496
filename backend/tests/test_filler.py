import socket
import time

import pytest

from heltblank.services.games import FillerAgent, FillerGenerationFailed, OpenAIAnswerGenerator
from heltblank.services.games.filler import first_token

from conftest import FakeGenerator


def test_first_token_keeps_only_the_first_word():
    assert first_token('Hund.') == 'Hund'
    assert first_token('  sol og hav') == 'sol'
    assert first_token('"Kat"') == 'Kat'
    assert first_token('') == ''
    assert first_token(None) == ''


def test_fillers_top_up_and_step_aside(make_registry, make_filler_agent):
    generator = FakeGenerator()
    registry = make_registry(filler_agent=make_filler_agent(generator, min_players=3))
    session, result = registry.join('ABCD', 's1', 'Anna')
    fillers = session.fillers()
    assert [f.name for f in fillers] == ['Robot Rasmus', 'Robot Ronja']
    assert sum(1 for p in result.players.values() if p['isFiller']) == 2
    assert generator.prompts == [session.prompt, session.prompt]
    # Generated answers wait for the humans, so the round is still joinable
    assert not any(f.has_answered for f in fillers)

    registry.join('ABCD', 's2', 'Bo')
    assert len(session.fillers()) == 1
    registry.join('ABCD', 's3', 'Cille')
    assert session.fillers() == []


def test_filler_answers_score_like_everyone_else(make_registry, make_filler_agent, emitter):
    registry = make_registry(filler_agent=make_filler_agent(FakeGenerator('Hund!'), min_players=3))
    session, _ = registry.join('ABCD', 's1', 'Anna')
    registry.submit_answer('ABCD', 's1', 'hund')

    assert len(emitter.named('roundResult')) == 1
    assert sorted(p.score for p in session.players.values()) == [1, 1, 1]
    assert set(session.history[0]['answers'].values()) == {'hund', 'Hund'}
    assert session.round_no == 2


def test_generation_failure_uses_random_word(make_registry, make_filler_agent, word_bank):
    generator = FakeGenerator(error=FillerGenerationFailed('timeout'))
    registry = make_registry(filler_agent=make_filler_agent(generator, min_players=3))
    session, _ = registry.join('ABCD', 's1', 'Anna')
    filler_ids = [f.id for f in session.fillers()]
    registry.submit_answer('ABCD', 's1', 'xyz')

    answers = session.history[0]['answers']
    assert all(answers[fid] in word_bank for fid in filler_ids)


def test_unexpected_generator_error_still_answers(word_bank):
    agent = FillerAgent(FakeGenerator(error=RuntimeError('boom')), word_bank)
    assert agent.answer_for('hund') in word_bank
    agent = FillerAgent(FakeGenerator(reply='   '), word_bank)
    assert agent.answer_for('hund') in word_bank


def test_filler_joining_after_humans_answered_closes_round(make_registry, make_filler_agent, emitter):
    registry = make_registry(filler_agent=make_filler_agent(FakeGenerator(), min_players=2))
    session, _ = registry.join('ABCD', 's1', 'Anna')
    registry.join('ABCD', 's2', 'Bo')
    assert session.fillers() == []
    registry.submit_answer('ABCD', 's1', 'sol')
    registry.leave('s2')

    assert len(emitter.named('roundResult')) == 1
    assert session.round_no == 2
    assert len(session.fillers()) == 1


def test_late_results_are_discarded(make_registry, word_bank, emitter):
    pending = []
    agent = FillerAgent(
        FakeGenerator(), word_bank, min_players=3,
        spawn=lambda fn, *args: pending.append((fn, args)),
    )
    registry = make_registry(filler_agent=agent)
    session, _ = registry.join('ABCD', 's1', 'Anna')
    assert len(pending) == 2
    fid = session.fillers()[0].id
    assert session.apply_filler_answer(fid, session.round_no + 1, 'hund') is False

    registry.leave('s1')
    assert session.ended
    assert 'ABCD' not in registry
    emitted = len(emitter.events)
    for fn, args in pending:
        fn(*args)
    assert len(emitter.events) == emitted
    assert not any(p.has_answered for p in session.players.values())


def test_generator_without_key_fails_cleanly():
    generator = OpenAIAnswerGenerator(api_key=None)
    assert generator.configured is False
    with pytest.raises(FillerGenerationFailed):
        generator.generate('hund')


def test_generator_does_not_retry_unless_asked():
    assert OpenAIAnswerGenerator(api_key='sk-test')._client.max_retries == 0
    assert OpenAIAnswerGenerator(api_key='sk-test', max_retries=2)._client.max_retries == 2


def test_silent_endpoint_fails_within_one_timeout(monkeypatch):
    for var in ('HTTP_PROXY', 'HTTPS_PROXY', 'ALL_PROXY', 'http_proxy', 'https_proxy', 'all_proxy'):
        monkeypatch.delenv(var, raising=False)
    # Accepts connections through the backlog but never answers
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(('127.0.0.1', 0))
    server.listen(8)
    try:
        port = server.getsockname()[1]
        generator = OpenAIAnswerGenerator(
            api_key='sk-test',
            base_url=f"http://127.0.0.1:{port}/v1",
            timeout_s=0.5,
        )
        started = time.monotonic()
        with pytest.raises(FillerGenerationFailed):
            generator.generate('hund')
        assert time.monotonic() - started < 1.5
    finally:
        server.close()
