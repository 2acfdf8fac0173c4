import pytest


def ack_code(ack):
    assert ack['success'] is False, ack
    return ack['code']


# -- lobby messages ------------------------------------------------------


def test_create_lobby(router, transport):
    ack = router.create_lobby('sid-0', {'hostName': 'Alice', 'gameType': 'quick-draw'})
    assert ack['success']
    code = ack['lobby']['lobbyId']
    assert ack['lobby']['maxPlayers'] == 8
    assert ack['lobby']['hostId'] == ack['playerId']
    assert transport.rooms[code] == {'sid-0'}
    assert transport.payloads('lobby:updated', to=code)[-1]['lobbyId'] == code
    assert router.player_for_sid('sid-0') == ack['playerId']


@pytest.mark.parametrize('name', ['', '   ', 'x' * 17, '<b>hi</b>', 'tab\there', None, 42])
def test_create_lobby_rejects_bad_names(router, name):
    ack = router.create_lobby('sid-0', {'hostName': name, 'gameType': 'quick-draw'})
    assert ack_code(ack) == 'invalid_payload'


@pytest.mark.parametrize('max_players', [2, 17, 'lots', 4.5, True])
def test_create_lobby_rejects_bad_sizes(router, max_players):
    ack = router.create_lobby(
        'sid-0', {'hostName': 'Alice', 'gameType': 'quick-draw', 'maxPlayers': max_players}
    )
    assert ack_code(ack) == 'invalid_payload'


def test_create_lobby_rejects_non_dict_payload(router):
    assert ack_code(router.create_lobby('sid-0', ['Alice'])) == 'invalid_payload'


def test_one_lobby_per_connection(router, make_lobby):
    code, _ = make_lobby()
    ack = router.create_lobby('sid-1', {'hostName': 'Zed', 'gameType': 'quick-draw'})
    assert ack_code(ack) == 'already_in_lobby'


def test_join_lobby_notifies_others(router, transport):
    created = router.create_lobby('sid-0', {'hostName': 'Alice', 'gameType': 'quick-draw'})
    code = created['lobby']['lobbyId']

    ack = router.join_lobby('sid-1', {'lobbyId': code.lower(), 'playerName': 'Bob'})

    assert ack['success']
    assert len(ack['lobby']['players']) == 2
    joined = transport.events('lobby:playerJoined', to=code)
    assert len(joined) == 1
    assert joined[0].skip_sid == 'sid-1'
    assert joined[0].data['name'] == 'Bob'
    assert transport.rooms[code] == {'sid-0', 'sid-1'}


def test_join_errors(router, make_lobby):
    assert ack_code(router.join_lobby('sid-9', {'lobbyId': 'ZZZZZZ', 'playerName': 'Bob'})) == 'lobby_not_found'
    code, _ = make_lobby()
    assert ack_code(router.join_lobby('sid-9', {'lobbyId': code, 'playerName': 'bob'})) == 'name_taken'
    assert ack_code(router.join_lobby('sid-9', {'playerName': 'Dave'})) == 'invalid_payload'


def test_messages_from_unknown_connection(router):
    assert ack_code(router.toggle_ready('nobody')) == 'player_not_found'
    assert ack_code(router.leave_lobby('nobody')) == 'player_not_found'
    assert ack_code(router.game_action('nobody', {'type': 'start_drawing'})) == 'player_not_found'


def test_update_player_and_toggle_ready(router, transport, make_lobby):
    code, players = make_lobby(ready=False)
    transport.clear()

    assert router.update_player('sid-1', {'name': 'Bobby', 'isReady': True}) == {'success': True}
    updated = transport.payloads('lobby:playerUpdated', to=code)[-1]
    assert updated['name'] == 'Bobby' and updated['isReady'] is True
    assert transport.names()[-1] == 'lobby:updated'

    router.toggle_ready('sid-1')
    assert transport.payloads('lobby:playerUpdated', to=code)[-1]['isReady'] is False

    assert ack_code(router.update_player('sid-1', {'name': '<script>'})) == 'invalid_payload'
    assert ack_code(router.update_player('sid-1', {'isReady': 'yes'})) == 'invalid_payload'


def test_leave_passes_host(router, transport, lobbies, make_lobby):
    code, players = make_lobby()
    transport.clear()

    assert router.leave_lobby('sid-0') == {'success': True}

    left = transport.payloads('lobby:playerLeft', to=code)
    assert left == [{'playerId': players['sid-0'], 'newHostId': players['sid-1']}]
    assert lobbies.get_lobby(code).host_id == players['sid-1']
    assert 'sid-0' not in transport.rooms[code]
    assert router.player_for_sid('sid-0') is None


def test_last_leave_disbands(router, transport, lobbies):
    created = router.create_lobby('sid-0', {'hostName': 'Alice', 'gameType': 'quick-draw'})
    code = created['lobby']['lobbyId']

    router.leave_lobby('sid-0')

    assert lobbies.get_lobby(code) is None
    assert transport.payloads('lobby:disbanded', to=code) == [{'lobbyId': code}]


def test_ping(router):
    ack = router.ping('sid-0')
    assert isinstance(ack['timestamp'], int) and ack['timestamp'] > 0


def test_unexpected_errors_become_internal_error(router, lobbies, make_lobby, monkeypatch):
    make_lobby()

    def boom(player_id):
        raise RuntimeError('boom')

    monkeypatch.setattr(lobbies, 'toggle_ready', boom)
    ack = router.toggle_ready('sid-1')
    assert ack == {'success': False, 'error': 'Internal server error', 'code': 'internal_error'}
    # The router keeps serving other messages.
    assert router.ping()['timestamp'] > 0


# -- starting and running games -------------------------------------------


def test_start_countdown(router, transport, scheduler, lobbies, make_lobby):
    code, players = make_lobby()
    transport.clear()

    assert router.start_game('sid-0') == {'success': True}
    assert lobbies.get_lobby(code).status == 'starting'
    assert transport.payloads('game:starting', to=code) == [3]

    scheduler.advance(1)
    scheduler.advance(1)
    assert transport.payloads('game:starting', to=code) == [3, 2, 1]
    assert router.engine_for(code) is None

    scheduler.advance(1)
    assert lobbies.get_lobby(code).status == 'playing'
    assert transport.payloads('game:started', to=code) == [{'gameType': 'quick-draw'}]
    assert router.engine_for(code) is not None

    state_targets = [e.to for e in transport.events('game:stateUpdate')]
    assert sorted(state_targets) == ['sid-0', 'sid-1', 'sid-2']
    assert transport.payloads('lobby:updated', to=code)[-1]['status'] == 'playing'

    # The countdown timer is gone once the game began.
    scheduler.advance(5)
    assert len(transport.payloads('game:started', to=code)) == 1


def test_start_requires_host_and_ready_players(router, make_lobby):
    make_lobby(ready=False)
    assert ack_code(router.start_game('sid-1')) == 'not_host'
    assert ack_code(router.start_game('sid-0')) == 'players_not_ready'


def test_unknown_game_type_rejected_at_start(router, make_lobby, lobbies):
    code, _ = make_lobby(game_type='spyfall')
    assert ack_code(router.start_game('sid-0')) == 'invalid_game_type'
    assert lobbies.get_lobby(code).status == 'waiting'


def test_game_action_needs_a_running_game(router, make_lobby):
    make_lobby()
    assert ack_code(router.game_action('sid-0', {'type': 'start_drawing'})) == 'game_not_playing'


def test_game_action_broadcasts_state_and_events(router, transport, started_lobby):
    code, players = started_lobby('quick-draw')
    transport.clear()

    ack = router.game_action('sid-1', {'type': 'start_drawing', 'playerId': 'spoofed', 'data': {}})

    assert ack == {'success': True}
    assert transport.payloads('game:roundStarted', to=code)[0]['round'] == 1
    updates = transport.events('game:stateUpdate')
    assert sorted(e.to for e in updates) == ['sid-0', 'sid-1', 'sid-2']

    engine = router.engine_for(code)
    drawer = engine.current_round_data.drawer_id
    drawer_sid = next(sid for sid, pid in players.items() if pid == drawer)
    for update in updates:
        round_view = update.data['currentRoundData']
        assert ('prompt' in round_view) == (update.to == drawer_sid)


def test_rejected_action_is_not_broadcast(router, transport, started_lobby):
    started_lobby('quick-draw')
    transport.clear()

    ack = router.game_action('sid-0', {'type': 'submit_guess', 'data': {'guess': 'cat'}})

    assert ack_code(ack) == 'action_rejected'
    assert transport.emitted == []
    assert ack_code(router.game_action('sid-0', {'data': {}})) == 'invalid_payload'


def test_timer_ticks_are_forwarded(router, transport, scheduler, started_lobby):
    code, _ = started_lobby('quick-draw')
    router.game_action('sid-0', {'type': 'start_drawing'})
    transport.clear()

    scheduler.advance(1)

    assert transport.payloads('game:timeUpdate', to=code) == [89]
    assert transport.events('game:stateUpdate') == []

    scheduler.advance(59)
    assert transport.payloads('game:phaseChanged', to=code) == [{'round': 1, 'phase': 'guessing'}]
    assert len(transport.events('game:stateUpdate')) == 3


def test_statement_game_runs_to_completion(router, transport, lobbies, started_lobby):
    code, players = started_lobby('two-truths-and-a-lie')
    engine = router.engine_for(code)

    for sid in players:
        ack = router.game_action(sid, {'type': 'submit_statements', 'data': {'statements': ['one', 'two', 'three']}})
        assert ack == {'success': True}

    order = list(players.items())
    for target_sid, target_id in order:
        statement_id = engine.submissions[target_id].statements[0].id
        for voter_sid, _ in order:
            if voter_sid != target_sid:
                ack = router.game_action(
                    voter_sid,
                    {'type': 'submit_vote', 'data': {'targetPlayerId': target_id, 'selectedStatementId': statement_id}},
                )
                assert ack == {'success': True}

    lobby = lobbies.get_lobby(code)
    assert lobby.status == 'finished'
    assert router.engine_for(code) is None
    assert engine.disposed

    ended = transport.payloads('game:ended', to=code)
    assert len(ended) == 1
    assert set(ended[0]['finalScores']) == set(players.values())
    assert transport.payloads('game:roundEnded', to=code)
    assert transport.payloads('lobby:updated', to=code)[-1]['status'] == 'finished'

    # Host sends everyone back to the waiting room.
    assert ack_code(router.reset_lobby('sid-1')) == 'not_host'
    assert router.reset_lobby('sid-0') == {'success': True}
    assert lobby.status == 'waiting'
    assert [p.is_ready for p in lobby.players] == [True, False, False]


def test_drawing_game_finishes_on_timers(router, transport, scheduler, lobbies, started_lobby):
    code, _ = started_lobby('quick-draw')
    router.game_action('sid-0', {'type': 'start_drawing'})
    engine = router.engine_for(code)

    scheduler.advance(95 * engine.total_rounds)

    assert lobbies.get_lobby(code).status == 'finished'
    assert len(transport.payloads('game:ended', to=code)) == 1
    assert len(transport.payloads('game:roundEnded', to=code)) == engine.total_rounds
    assert scheduler.pending == []


# -- disconnects, rejoin and teardown ---------------------------------------


def test_disconnect_then_grace_expiry_removes_player(router, transport, scheduler, lobbies, make_lobby):
    code, players = make_lobby()
    transport.clear()

    router.disconnect('sid-2')

    lobby = lobbies.get_lobby(code)
    carol = lobby.find_player(players['sid-2'])
    assert not carol.is_connected
    assert transport.payloads('lobby:playerUpdated', to=code)[-1]['isConnected'] is False

    scheduler.advance(29)
    assert lobby.find_player(players['sid-2']) is not None

    scheduler.advance(1)
    assert lobby.find_player(players['sid-2']) is None
    assert transport.payloads('lobby:playerLeft', to=code)[-1]['playerId'] == players['sid-2']


def test_rejoin_within_grace_keeps_player(router, transport, scheduler, lobbies, make_lobby):
    code, players = make_lobby()
    router.disconnect('sid-2')

    ack = router.rejoin_lobby('sid-new', {'lobbyId': code, 'playerId': players['sid-2']})

    assert ack['success'] and ack['playerId'] == players['sid-2']
    assert router.player_for_sid('sid-new') == players['sid-2']
    assert 'sid-new' in transport.rooms[code]

    scheduler.advance(60)
    carol = lobbies.get_lobby(code).find_player(players['sid-2'])
    assert carol is not None and carol.is_connected


def test_rejoin_during_game_sends_own_state(router, transport, started_lobby):
    code, players = started_lobby('would-you-rather')
    router.disconnect('sid-1')
    transport.clear()

    router.rejoin_lobby('sid-back', {'lobbyId': code, 'playerId': players['sid-1']})

    updates = transport.events('game:stateUpdate')
    assert [e.to for e in updates] == ['sid-back']
    assert updates[0].data['gameType'] == 'would-you-rather'


def test_rejoin_errors(router, make_lobby):
    code, _ = make_lobby()
    assert ack_code(router.rejoin_lobby('x', {'lobbyId': 'ZZZZZZ', 'playerId': 'p'})) == 'lobby_not_found'
    assert ack_code(router.rejoin_lobby('x', {'lobbyId': code, 'playerId': 'ghost'})) == 'player_not_found'
    assert ack_code(router.rejoin_lobby('x', {'lobbyId': code})) == 'invalid_payload'


def test_grace_expiry_after_lobby_is_gone_is_a_noop(router, transport, scheduler, lobbies):
    created = router.create_lobby('sid-0', {'hostName': 'Alice', 'gameType': 'quick-draw'})
    code = created['lobby']['lobbyId']
    router.disconnect('sid-0')

    assert router.reclaim_idle_lobbies() == 1
    assert transport.payloads('lobby:disbanded', to=code) == [{'lobbyId': code}]
    transport.clear()

    scheduler.advance(30)
    assert transport.emitted == []
    assert router.reclaim_idle_lobbies() == 0


def test_teardown_during_countdown_cancels_start(router, transport, scheduler, lobbies, make_lobby):
    code, players = make_lobby()
    router.start_game('sid-0')
    for sid in players:
        router.disconnect(sid)

    assert router.reclaim_idle_lobbies() == 1
    scheduler.advance(5)

    assert transport.payloads('game:started', to=code) == []
    assert router.engine_for(code) is None


def test_teardown_during_game_cleans_up_engine(router, scheduler, started_lobby):
    code, players = started_lobby('quick-draw')
    router.game_action('sid-0', {'type': 'start_drawing'})
    engine = router.engine_for(code)
    for sid in players:
        router.disconnect(sid)

    router.reclaim_idle_lobbies()

    assert engine.disposed
    assert router.engine_for(code) is None
    remaining = engine.current_round_data.time_remaining
    scheduler.advance(10)
    assert engine.current_round_data.time_remaining == remaining


def test_idle_sweep_runs_periodically(router, scheduler, lobbies, monkeypatch):
    calls = []
    monkeypatch.setattr(lobbies, 'reclaim_idle_lobbies', lambda: calls.append(scheduler.now) or 0)
    router.start_idle_sweep()
    router.start_idle_sweep()

    scheduler.advance(router.settings.sweep_interval_sec * 2)
    assert calls == [300, 600]


def test_failed_room_join_undoes_create(router, transport, lobbies, monkeypatch):
    def refuse(sid, room):
        raise ValueError('sid is not connected to requested namespace')

    monkeypatch.setattr(transport, 'enter_room', refuse)

    ack = router.create_lobby('sid-0', {'hostName': 'Alice', 'gameType': 'quick-draw'})

    assert ack_code(ack) == 'internal_error'
    assert lobbies.all_lobbies() == []
    assert router.player_for_sid('sid-0') is None


def test_failed_room_join_undoes_join(router, transport, lobbies, make_lobby, monkeypatch):
    code, players = make_lobby()
    transport.clear()

    def refuse(sid, room):
        raise ValueError('sid is not connected to requested namespace')

    monkeypatch.setattr(transport, 'enter_room', refuse)
    ack = router.join_lobby('sid-9', {'lobbyId': code, 'playerName': 'Dave'})

    assert ack_code(ack) == 'internal_error'
    assert lobbies.get_lobby(code).player_count == 3
    assert router.player_for_sid('sid-9') is None
    assert transport.events('lobby:playerJoined') == []

    monkeypatch.undo()
    assert router.join_lobby('sid-9', {'lobbyId': code, 'playerName': 'Dave'})['success']


# -- players leaving a running game ------------------------------------------


def test_statement_game_skips_player_who_left(router, transport, lobbies, started_lobby):
    code, players = started_lobby('two-truths-and-a-lie')
    engine = router.engine_for(code)
    for sid in players:
        router.game_action(sid, {'type': 'submit_statements', 'data': {'statements': ['one', 'two', 'three']}})
    assert engine.current_target_id == players['sid-0']

    assert router.leave_lobby('sid-2') == {'success': True}

    def vote(sid, target_sid):
        target_id = players[target_sid]
        statement_id = engine.submissions[target_id].statements[0].id
        return router.game_action(
            sid, {'type': 'submit_vote', 'data': {'targetPlayerId': target_id, 'selectedStatementId': statement_id}}
        )

    assert vote('sid-1', 'sid-0') == {'success': True}
    assert engine.current_target_id == players['sid-1']

    # Carol's spotlight is skipped, so this vote ends the game.
    assert vote('sid-0', 'sid-1') == {'success': True}
    lobby = lobbies.get_lobby(code)
    assert lobby.status == 'finished'
    assert router.engine_for(code) is None
    assert len(transport.payloads('game:ended', to=code)) == 1

    assert router.reset_lobby('sid-0') == {'success': True}
    assert router.join_lobby('sid-9', {'lobbyId': code, 'playerName': 'Dave'})['success']


def test_statement_game_target_leaving_moves_spotlight(router, started_lobby):
    code, players = started_lobby('two-truths-and-a-lie')
    engine = router.engine_for(code)
    for sid in players:
        router.game_action(sid, {'type': 'submit_statements', 'data': {'statements': ['one', 'two', 'three']}})
    target_id = players['sid-0']
    statement_id = engine.submissions[target_id].statements[0].id
    router.game_action(
        'sid-1', {'type': 'submit_vote', 'data': {'targetPlayerId': target_id, 'selectedStatementId': statement_id}}
    )

    router.leave_lobby('sid-0')

    assert engine.current_target_id == players['sid-1']
    assert engine.votes == []
    assert engine.get_state()['votingProgress'] == {'voted': 0, 'total': 1}


def test_game_ends_when_too_few_players_remain(router, transport, lobbies, started_lobby):
    code, players = started_lobby('two-truths-and-a-lie')

    router.leave_lobby('sid-1')
    assert lobbies.get_lobby(code).status == 'playing'
    router.leave_lobby('sid-2')

    assert lobbies.get_lobby(code).status == 'finished'
    assert router.engine_for(code) is None
    ended = transport.payloads('game:ended', to=code)
    assert len(ended) == 1
    assert ended[0]['winner'] == players['sid-0']


def test_preference_game_resolves_after_grace_expiry(router, transport, scheduler, started_lobby):
    code, players = started_lobby('would-you-rather')
    engine = router.engine_for(code)
    for sid in players:
        ack = router.game_action(sid, {'type': 'submit_scenario', 'data': {'optionA': 'fly', 'optionB': 'swim'}})
        assert ack == {'success': True}
    first = engine.current_scenario
    assert first.submitted_by == players['sid-0']
    router.game_action('sid-1', {'type': 'submit_vote', 'data': {'scenarioId': first.id, 'choice': 'A'}})

    router.disconnect('sid-2')
    scheduler.advance(router.settings.grace_sec)

    # Bob's vote was the last one still needed; Carol's scenario is dropped.
    assert len(transport.payloads('game:scenarioResolved', to=code)) == 1
    second = engine.current_scenario
    assert second.submitted_by == players['sid-1']
    assert len(engine.round_scenarios()) == 2

    router.game_action('sid-0', {'type': 'submit_vote', 'data': {'scenarioId': second.id, 'choice': 'B'}})

    assert transport.payloads('game:roundStarted', to=code) == [{'round': 2}]
    assert engine.current_round == 2
    assert engine.phase == 'submitting'


def test_drawing_round_ends_when_drawer_leaves(router, transport, scheduler, started_lobby):
    code, players = started_lobby('quick-draw')
    router.game_action('sid-0', {'type': 'start_drawing'})
    engine = router.engine_for(code)
    drawer = engine.current_round_data.drawer_id
    drawer_sid = next(sid for sid, pid in players.items() if pid == drawer)

    router.leave_lobby(drawer_sid)

    assert engine.current_round_data.phase == 'reveal'
    assert drawer not in engine.player_order
    assert len(transport.payloads('game:roundEnded', to=code)) == 1

    scheduler.advance(engine.reveal_duration)
    assert engine.current_round == 2
    assert engine.current_round_data.drawer_id in engine.player_ids
