"""Tests for email and push dispatch, reminders and the reminder scheduler."""

import pytest
import requests
from datetime import timedelta
from unittest.mock import MagicMock, patch

from lmslocal.notifications.email import EmailDispatcher
from lmslocal.notifications.push import PushDispatcher
from lmslocal.notifications.scheduler import send_reminders
from lmslocal.notifications.service import NotificationService
from lmslocal.services.cache import CacheService
from lmslocal.services.competitions import CompetitionService
from lmslocal.services.exceptions import Conflict, NotFound, Unauthorized

from conftest import NOW, lock_at


def fake_response(payload):
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


REMINDER_PAYLOAD = {
    'display_name': 'Alice <3',
    'organiser_name': 'Olivia',
    'competition_name': 'Office League',
    'round_number': 2,
    'lock_time': '2026-03-07T13:00:00+00:00',
    'link': 'https://lmslocal.co.uk/game/1',
}


class TestEmailDispatcher:
    """Tests for EmailDispatcher."""

    def test_render_pick_reminder(self):
        dispatcher = EmailDispatcher(api_key='')

        subject, html = dispatcher.render('pick_reminder', REMINDER_PAYLOAD)

        assert subject == 'Olivia (Office League): Pick reminder for Round 2'
        assert 'Alice &lt;3' in html

    def test_render_results_verdicts(self):
        dispatcher = EmailDispatcher(api_key='')
        payload = {
            **REMINDER_PAYLOAD,
            'chosen_team': 'ARS',
            'outcome': 'LOSE',
            'status': 'out',
            'lives_remaining': 0,
            'players_remaining': 4,
        }

        _, html = dispatcher.render('results', payload)
        assert "you're out" in html

        _, html = dispatcher.render('results', {**payload, 'status': 'active', 'lives_remaining': 1})
        assert 'Lives remaining: 1' in html

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            EmailDispatcher(api_key='').render('newsletter', {})

    def test_disabled_without_key(self):
        dispatcher = EmailDispatcher(api_key='')

        with patch.object(dispatcher.session, 'post') as post:
            assert dispatcher.send('pick_reminder', 'alice@example.com', REMINDER_PAYLOAD) is None
            post.assert_not_called()

    def test_send_posts_to_api(self):
        dispatcher = EmailDispatcher(api_url='https://mail.test/emails', api_key='key-123')

        with patch.object(dispatcher.session, 'post', return_value=fake_response({'id': 'msg-1'})) as post:
            message_id = dispatcher.send('pick_reminder', 'alice@example.com', REMINDER_PAYLOAD)

        assert message_id == 'msg-1'
        args, kwargs = post.call_args
        assert args[0] == 'https://mail.test/emails'
        assert kwargs['json']['to'] == ['alice@example.com']
        assert kwargs['headers']['Authorization'] == 'Bearer key-123'

    def test_http_error_propagates(self):
        dispatcher = EmailDispatcher(api_key='key-123')
        response = fake_response({})
        response.raise_for_status.side_effect = requests.HTTPError("500 Server Error")

        with patch.object(dispatcher.session, 'post', return_value=response):
            with pytest.raises(requests.HTTPError):
                dispatcher.send('pick_reminder', 'alice@example.com', REMINDER_PAYLOAD)


class TestPushDispatcher:
    """Tests for PushDispatcher."""

    def test_disabled_without_key(self):
        dispatcher = PushDispatcher(server_key='')
        assert dispatcher.send('device-1', 'Title', 'Body') is False

    def test_send_preset(self):
        dispatcher = PushDispatcher(api_url='https://push.test/send', server_key='server')

        with patch.object(dispatcher.session, 'post', return_value=fake_response({'success': 1})) as post:
            assert dispatcher.send_preset('device-1', 'results', {'competition_id': 7}) is True

        kwargs = post.call_args[1]
        assert kwargs['json']['notification']['title'] == 'Results Are In'
        assert kwargs['json']['data'] == {'competition_id': '7'}
        assert kwargs['headers']['Authorization'] == 'key=server'

    def test_rejected_token(self):
        dispatcher = PushDispatcher(server_key='server')

        with patch.object(dispatcher.session, 'post', return_value=fake_response({'success': 0})):
            assert dispatcher.send('device-1', 'Title', 'Body') is False


@pytest.fixture
def email():
    return MagicMock()


@pytest.fixture
def push():
    return MagicMock()


@pytest.fixture
def notifier(db_fixture, email, push):
    service = NotificationService(db_fixture, email=email, push=push, max_workers=1)
    yield service
    service.shutdown(wait=True)


class TestNotificationService:
    """Tests for NotificationService."""

    def test_submit_swallows_failures(self, notifier):
        def boom():
            raise RuntimeError("provider down")

        future = notifier.submit("failing send", boom)

        assert future.result(timeout=5) is None

    def test_disabled_service_skips(self, db_fixture, email, push):
        service = NotificationService(db_fixture, email=email, push=push, max_workers=1)
        service.enabled = False

        assert service.submit("anything", email.send) is None
        service.shutdown()
        email.send.assert_not_called()

    def test_notify_results_skips_opted_out(self, db_fixture, notifier, email, push, seed):
        organiser = seed.user('Olivia')
        competition = seed.competition(organiser)
        alice = seed.user('Alice')
        bob = seed.user('Bob')
        seed.player(competition['id'], alice)
        seed.player(competition['id'], bob)
        db_fixture.save_device_token(alice, 'device-alice', 'ios')
        players = [
            {**db_fixture.get_player(competition['id'], alice)},
            {**db_fixture.get_player(competition['id'], bob), 'email_opt_out': 1},
        ]
        entries = [
            {'user_id': alice, 'chosen_team': 'ARS', 'outcome': 'WIN',
             'status_after': 'active', 'lives_after': 0},
            {'user_id': bob, 'chosen_team': 'CHE', 'outcome': 'LOSE',
             'status_after': 'out', 'lives_after': 0},
        ]

        queued = notifier.notify_results(competition, 1, players, entries)
        notifier.shutdown(wait=True)

        assert queued == 1
        kind, recipient, payload = email.send.call_args[0]
        assert (kind, recipient) == ('results', 'alice@example.com')
        assert payload['players_remaining'] == 1
        push.send_preset.assert_called_once_with(
            'device-alice', 'results', {'competition_id': competition['id']}
        )

    def test_send_pick_reminders(self, db_fixture, notifier, email, seed, league):
        competition_id = league['competition']['id']
        round_id, fixtures = seed.round(competition_id, [('ARS', 'CHE')])
        db_fixture.create_pick(round_id, competition_id, league['alice'], 'ARS', fixtures[0])

        result = notifier.send_pick_reminders(league['organiser'], competition_id, now=NOW)
        notifier.shutdown(wait=True)

        assert result == {'round_number': 1, 'players': 2, 'emails': 2, 'pushes': 0}
        recipients = sorted(call[0][1] for call in email.send.call_args_list)
        assert recipients == ['bob@example.com', 'carol@example.com']
        assert db_fixture.get_round(round_id)['reminder_sent_at'] is not None

    def test_opted_out_player_gets_no_reminder(self, db_fixture, notifier, email, seed, league):
        competition_id = league['competition']['id']
        seed.round(competition_id, [('ARS', 'CHE')])
        CompetitionService(db_fixture, CacheService(ttl=60)).update_email_preferences(
            league['bob'], False
        )

        result = notifier.send_pick_reminders(league['organiser'], competition_id, now=NOW)
        notifier.shutdown(wait=True)

        assert result['emails'] == 2
        recipients = sorted(call[0][1] for call in email.send.call_args_list)
        assert recipients == ['alice@example.com', 'carol@example.com']

    def test_pick_reminders_need_capability(self, notifier, seed, league):
        seed.round(league['competition']['id'], [('ARS', 'CHE')])

        with pytest.raises(Unauthorized):
            notifier.send_pick_reminders(league['alice'], league['competition']['id'], now=NOW)

    def test_pick_reminders_need_open_round(self, notifier, seed, league):
        competition_id = league['competition']['id']

        with pytest.raises(NotFound):
            notifier.send_pick_reminders(league['organiser'], competition_id, now=NOW)

        seed.round(competition_id, [('ARS', 'CHE')])
        with pytest.raises(Conflict):
            notifier.send_pick_reminders(league['organiser'], competition_id, now=lock_at())

    def test_due_reminders_sent_once(self, notifier, email, seed, league):
        seed.round(league['competition']['id'], [('ARS', 'CHE')])

        assert notifier.send_due_reminders(now=NOW, window_hours=24) == 1
        assert notifier.send_due_reminders(now=NOW, window_hours=24) == 0
        notifier.shutdown(wait=True)
        assert email.send.call_count == 3

    def test_due_reminders_outside_window(self, notifier, seed, league):
        seed.round(league['competition']['id'], [('ARS', 'CHE')], lock_time=lock_at(timedelta(days=3)))

        assert notifier.send_due_reminders(now=NOW, window_hours=24) == 0


class TestScheduler:
    """Tests for the reminder job."""

    def test_send_reminders_runs_service(self, capsys):
        service = MagicMock()
        service.send_due_reminders.return_value = 2

        send_reminders(service)

        assert "2 round(s) reminded" in capsys.readouterr().out

    def test_send_reminders_reports_errors(self, capsys):
        service = MagicMock()
        service.send_due_reminders.side_effect = RuntimeError("database locked")

        send_reminders(service)

        assert "Error during reminder check: database locked" in capsys.readouterr().out
