import json
import time

from cardroom import NAMESPACE


def _events(sio, name):
    return [pkt['args'][0] if pkt['args'] else None
            for pkt in sio.get_received(NAMESPACE) if pkt['name'] == name]


def _received(sio):
    return sio.get_received(NAMESPACE)


def _flush(*clients):
    for sio in clients:
        sio.get_received(NAMESPACE)


def _names(packets):
    return [pkt['name'] for pkt in packets]


def _last(packets, name):
    matching = [pkt['args'][0] for pkt in packets if pkt['name'] == name]
    return matching[-1] if matching else None


def _hands(packets):
    return [pkt['args'][0] for pkt in packets if pkt['name'] == 'game:hand']


def _table(sio_factory, names=('alice', 'bob', 'carol'), deck='base'):
    """Create a game from the first client and join the rest; returns (game_id, clients)."""
    clients = {name: sio_factory() for name in names}
    first = names[0]
    clients[first].emit('game:new', {'deck': deck, 'name': first.title(), 'player_id': first}, namespace=NAMESPACE)
    game = _last(_received(clients[first]), 'game:new')
    for name in names[1:]:
        clients[name].emit('game:join', {'game_id': game['id'], 'name': name.title(), 'player_id': name},
                           namespace=NAMESPACE)
    for sio in clients.values():
        _received(sio)
    return game['id'], clients


def test_socket_connect(sio_factory):
    sio = sio_factory()
    assert sio.is_connected(NAMESPACE)
    sio.emit('ping', {'n': 1}, namespace=NAMESPACE)
    assert _events(sio, 'pong') == [{'n': 1}]


def test_new_game_private_reply(sio_factory):
    creator = sio_factory()
    bystander = sio_factory()
    creator.emit('game:new', {'deck': 'base', 'options': {'hand_size': 4}}, namespace=NAMESPACE)
    game = _last(_received(creator), 'game:new')
    assert game['status'] == 'lobby'
    assert game['players'] == []
    assert game['round']['host'] is None
    assert game['rules']['hand_size'] == 4
    assert 'loan' not in game
    assert _received(bystander) == []


def test_join_broadcasts_to_room(sio_factory):
    game_id, clients = _table(sio_factory, names=('alice', 'bob'))
    carol = sio_factory()
    carol.emit('game:join', {'game_id': game_id.lower(), 'name': 'Carol', 'player_id': 'carol'}, namespace=NAMESPACE)
    for sio in (clients['alice'], clients['bob'], carol):
        state = _last(_received(sio), 'game:edit')
        assert [p['id'] for p in state['players']] == ['alice', 'bob', 'carol']
        assert state['round']['host'] == 'alice'


def test_player_id_defaults_to_connection(sio_factory):
    creator = sio_factory()
    creator.emit('game:new', {'deck': 'base', 'name': 'Anon'}, namespace=NAMESPACE)
    game = _last(_received(creator), 'game:new')
    assert len(game['players']) == 1
    player_id = game['players'][0]['id']
    assert player_id
    assert game['round']['host'] == player_id
    # Joining again from the same connection is the same player
    creator.emit('game:join', {'game_id': game['id'], 'name': 'Anon again'}, namespace=NAMESPACE)
    state = _last(_received(creator), 'game:edit')
    assert [p['id'] for p in state['players']] == [player_id]
    assert state['players'][0]['name'] == 'Anon again'


def test_errors_are_private(sio_factory):
    game_id, clients = _table(sio_factory)
    clients['bob'].emit('game:start', game_id, namespace=NAMESPACE)
    for sio in clients.values():
        _received(sio)

    clients['alice'].emit('game:play-white-cards', {'game_id': game_id, 'cards': ['x'], 'player_id': 'alice'},
                          namespace=NAMESPACE)
    errors = _events(clients['alice'], 'error')
    assert len(errors) == 1
    assert errors[0]['type'] == 'NotYourTurn'
    assert errors[0]['event'] == 'game:play-white-cards'
    assert _received(clients['bob']) == []
    assert _received(clients['carol']) == []


def test_unknown_game_and_missing_fields(sio_factory):
    sio = sio_factory()
    sio.emit('game:join', {'game_id': 'NOPE', 'name': 'Zed'}, namespace=NAMESPACE)
    sio.emit('game:join', {'name': 'Zed'}, namespace=NAMESPACE)
    sio.emit('game:new', {'deck': 'missing'}, namespace=NAMESPACE)
    errors = _events(sio, 'error')
    assert [e['type'] for e in errors] == ['GameNotFound', 'InvalidCommand', 'UnknownDeck']


def test_start_requires_three_players(sio_factory):
    game_id, clients = _table(sio_factory, names=('alice', 'bob'))
    clients['alice'].emit('game:start', {'game_id': game_id}, namespace=NAMESPACE)
    assert [e['type'] for e in _events(clients['alice'], 'error')] == ['NotEnoughPlayers']


def test_full_round_over_sockets(sio_factory):
    game_id, clients = _table(sio_factory)
    alice, bob, carol = clients['alice'], clients['bob'], clients['carol']
    alice.emit('game:start', game_id, namespace=NAMESPACE)
    bob_packets, carol_packets = _received(bob), _received(carol)
    _flush(alice)
    state = _last(bob_packets, 'game:edit')
    assert state['stage'] == 'submitting'
    pick = state['round']['prompt_card']['pick']
    bob_cards = _hands(bob_packets)[-1]['cards'][:pick]
    carol_cards = _hands(carol_packets)[-1]['cards'][:pick]

    bob.emit('game:play-white-cards', {'game_id': game_id, 'cards': bob_cards, 'player_id': 'bob'},
             namespace=NAMESPACE)
    packets = _received(carol)
    assert _names(packets) == ['game:edit', 'game:hand', 'game:cards-played']
    assert _last(packets, 'game:cards-played') == {'submitted': 1, 'expected': 2}
    submissions = _last(packets, 'game:edit')['round']['submissions']
    # Nobody sees hidden card text, not even the judge
    assert submissions == [{'player': 'bob', 'cards': None, 'hidden': True}]
    assert _last(_received(alice), 'game:edit')['round']['submissions'][0]['cards'] is None
    assert _hands(_received(bob))[-1]['submitted'] == bob_cards

    carol.emit('game:play-white-cards', {'game_id': game_id, 'cards': carol_cards, 'player_id': 'carol'},
               namespace=NAMESPACE)
    assert _last(_received(alice), 'game:edit')['stage'] == 'judging'

    alice.emit('game:reveal-card', {'game_id': game_id, 'player_id': 'bob', 'host_id': 'alice'},
               namespace=NAMESPACE)
    revealed = _last(_received(bob), 'game:edit')['round']['submissions']
    assert {s['player']: s['cards'] for s in revealed} == {'bob': bob_cards, 'carol': None}
    alice.emit('game:reveal-card', {'game_id': game_id, 'player_id': 'carol', 'host_id': 'alice'},
               namespace=NAMESPACE)
    _flush(alice, bob, carol)

    alice.emit('game:finish-round', {'game_id': game_id, 'winner_player_id': 'bob', 'host_id': 'alice'},
               namespace=NAMESPACE)
    packets = _received(carol)
    assert _names(packets) == ['game:edit', 'game:hand', 'game:round-winner']
    state = _last(packets, 'game:edit')
    assert next(p for p in state['players'] if p['id'] == 'bob')['points'] == 1
    assert state['round']['host'] == 'bob'
    assert state['round']['submissions'] == []
    assert len(state['finished_rounds']) == 1
    announcement = _last(packets, 'game:round-winner')
    assert announcement['winner'] == 'bob'
    assert announcement['winner_name'] == 'Bob'
    assert announcement['number'] == 1


def test_room_edits_carry_no_hands(sio_factory):
    game_id, clients = _table(sio_factory)
    clients['alice'].emit('game:start', game_id, namespace=NAMESPACE)
    packets = {name: _received(sio) for name, sio in clients.items()}
    hands = {}
    for name, received in packets.items():
        state = _last(received, 'game:edit')
        assert all('cards' not in p for p in state['players'])
        assert all(p['hand_size'] == 5 for p in state['players'])
        # Each connection gets exactly one hand, its own
        own = _hands(received)
        assert [h['player'] for h in own] == [name]
        hands[name] = own[0]['cards']
    for name, received in packets.items():
        others = [card for other, cards in hands.items() if other != name for card in cards]
        text = json.dumps([pkt['args'] for pkt in received])
        assert not [card for card in others if json.dumps(card) in text]


def test_hidden_play_not_recoverable_from_room_traffic(sio_factory):
    game_id, clients = _table(sio_factory)
    alice, bob, carol = clients['alice'], clients['bob'], clients['carol']
    alice.emit('game:start', game_id, namespace=NAMESPACE)
    before = _received(alice)
    bob_hand = _hands(_received(bob))[-1]['cards']
    _flush(carol)
    pick = _last(before, 'game:edit')['round']['prompt_card']['pick']

    bob.emit('game:play-white-cards', {'game_id': game_id, 'cards': bob_hand[:pick], 'player_id': 'bob'},
             namespace=NAMESPACE)
    # The judge diffs two consecutive broadcasts and still learns nothing
    after = _received(alice)
    for card in bob_hand:
        assert json.dumps(card) not in json.dumps([pkt['args'] for pkt in before + after])
    assert _hands(after)[-1]['player'] == 'alice'


def test_discard_and_resubmit_over_sockets(sio_factory):
    game_id, clients = _table(sio_factory)
    clients['alice'].emit('game:start', game_id, namespace=NAMESPACE)
    packets = _received(clients['bob'])
    pick = _last(packets, 'game:edit')['round']['prompt_card']['pick']
    hand = _hands(packets)[-1]['cards']
    clients['bob'].emit('game:play-white-cards', {'game_id': game_id, 'cards': hand[:pick], 'player_id': 'bob'},
                        namespace=NAMESPACE)
    _received(clients['bob'])
    clients['bob'].emit('game:discard-white-card', {'game_id': game_id, 'card': hand[0], 'player_id': 'bob'},
                        namespace=NAMESPACE)
    state = _last(_received(clients['carol']), 'game:edit')
    assert state['round']['submissions'] == []
    assert _hands(_received(clients['bob']))[-1]['submitted'] is None


def test_finish_round_checks_sender_is_judge(sio_factory):
    game_id, clients = _table(sio_factory)
    alice, bob, carol = clients['alice'], clients['bob'], clients['carol']
    alice.emit('game:start', game_id, namespace=NAMESPACE)
    packets = _received(bob)
    pick = _last(packets, 'game:edit')['round']['prompt_card']['pick']
    bob.emit('game:play-white-cards',
             {'game_id': game_id, 'cards': _hands(packets)[-1]['cards'][:pick], 'player_id': 'bob'},
             namespace=NAMESPACE)
    _flush(alice, bob, carol)

    # No host_id: the sender's connection is taken as the judge, and bob is not it
    bob.emit('game:finish-round', {'game_id': game_id, 'winner_player_id': 'bob', 'player_id': 'bob'},
             namespace=NAMESPACE)
    errors = _events(bob, 'error')
    assert [e['type'] for e in errors] == ['NotYourTurn']
    assert errors[0]['event'] == 'game:finish-round'
    assert _received(alice) == []
    assert _received(carol) == []


def test_round_winner_not_announced_after_everyone_leaves(flask_app, sio_factory):
    flask_app.config['ENABLE_SCHEDULER_IN_TESTS'] = True
    flask_app.config['ROUND_WINNER_DELAY_SEC'] = 0.2
    announcer = flask_app.extensions['round_announcer']
    emitted = []
    announcer.emit = lambda game_id, payload: emitted.append(game_id)

    game_id, clients = _table(sio_factory)
    alice, bob, carol = clients['alice'], clients['bob'], clients['carol']
    alice.emit('game:start', game_id, namespace=NAMESPACE)
    packets = _received(bob)
    pick = _last(packets, 'game:edit')['round']['prompt_card']['pick']
    bob.emit('game:play-white-cards',
             {'game_id': game_id, 'cards': _hands(packets)[-1]['cards'][:pick], 'player_id': 'bob'},
             namespace=NAMESPACE)
    alice.emit('game:finish-round', {'game_id': game_id, 'winner_player_id': 'bob', 'host_id': 'alice'},
               namespace=NAMESPACE)
    assert announcer.pending(game_id) == 1
    for name, sio in clients.items():
        sio.emit('game:leave', {'game_id': game_id, 'player_id': name}, namespace=NAMESPACE)
    assert announcer.pending(game_id) == 0
    time.sleep(0.5)
    assert emitted == []


def test_leave_broadcasts_kick_and_reassigns_host(sio_factory):
    game_id, clients = _table(sio_factory)
    clients['alice'].emit('game:leave', {'game_id': game_id, 'player_id': 'alice'}, namespace=NAMESPACE)
    packets = _received(clients['bob'])
    assert _names(packets) == ['game:edit', 'game:hand', 'game:kick']
    assert _last(packets, 'game:kick') == 'alice'
    state = _last(packets, 'game:edit')
    assert state['round']['host'] == 'bob'
    assert [p['id'] for p in state['players']] == ['bob', 'carol']
    # alice left the room
    _received(clients['alice'])
    clients['bob'].emit('game:leave', {'game_id': game_id, 'player_id': 'bob'}, namespace=NAMESPACE)
    assert _received(clients['alice']) == []


def test_empty_game_is_removed(client, sio_factory):
    game_id, clients = _table(sio_factory, names=('alice',))
    assert client.get(f'/api/games/{game_id}').status_code == 200
    clients['alice'].emit('game:leave', {'game_id': game_id, 'player_id': 'alice'}, namespace=NAMESPACE)
    assert client.get(f'/api/games/{game_id}').status_code == 404
    clients['alice'].emit('game:join', {'game_id': game_id, 'name': 'Alice'}, namespace=NAMESPACE)
    assert [e['type'] for e in _events(clients['alice'], 'error')] == ['GameNotFound']


def test_reconnect_reuses_player(sio_factory):
    game_id, clients = _table(sio_factory)
    again = sio_factory()
    again.emit('game:join', {'game_id': game_id, 'name': 'Bob', 'player_id': 'bob'}, namespace=NAMESPACE)
    state = _last(_received(again), 'game:edit')
    assert [p['id'] for p in state['players']] == ['alice', 'bob', 'carol']


def test_deck_sharing(sio_factory):
    owner = sio_factory()
    other = sio_factory()
    deck = {
        'id': 'party-pack',
        'name': 'Party pack',
        'prompts': [{'text': 'Why ____?', 'pick': 1}],
        'responses': [f'r{i}' for i in range(30)],
    }
    owner.emit('deck:share', deck, namespace=NAMESPACE)
    assert _events(owner, 'deck:shared') == [{'id': 'party-pack', 'name': 'Party pack', 'prompts': 1, 'responses': 30}]

    other.emit('deck:request', 'party-pack', namespace=NAMESPACE)
    assert _events(other, 'deck:response') == [deck]

    other.emit('deck:saved', {'id': 'party-pack'}, namespace=NAMESPACE)
    assert _events(owner, 'deck:saved') == [{'id': 'party-pack'}]

    other.emit('game:new', {'deck': 'party-pack'}, namespace=NAMESPACE)
    assert _last(_received(other), 'game:new')['deck_id'] == 'party-pack'

    other.emit('deck:unshare', 'party-pack', namespace=NAMESPACE)
    assert [e['type'] for e in _events(other, 'error')] == ['InvalidCommand']
    owner.emit('deck:unshare', 'party-pack', namespace=NAMESPACE)
    other.emit('deck:request', 'party-pack', namespace=NAMESPACE)
    assert [e['type'] for e in _events(other, 'error')] == ['UnknownDeck']


def test_shared_deck_removed_on_disconnect(flask_app, sio_factory):
    owner = sio_factory()
    owner.emit('deck:share', {'id': 'temp', 'prompts': ['p'], 'responses': ['r']}, namespace=NAMESPACE)
    assert flask_app.extensions['deck_registry'].host_of('temp') is not None
    owner.disconnect(namespace=NAMESPACE)
    assert flask_app.extensions['deck_registry'].host_of('temp') is None
