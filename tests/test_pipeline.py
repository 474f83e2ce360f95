"""Tests for the transfer pipeline."""

import aiohttp
import pytest

from gitlab_transfer.migration.pipeline import MigrationPipeline, TransferState

from conftest import (
    DESTINATION_URL,
    SOURCE_URL,
    FakeResponse,
    json_response,
    make_client,
)

SOURCE_API = f'{SOURCE_URL}/api/v4/projects/nobi-corp%2Fearn-investment-automation'
DESTINATION_API = f'{DESTINATION_URL}/api/v4/projects'
ARCHIVE = b'exported project archive'
HTTP_DATE = 'Wed, 21 Oct 2026 07:28:00 GMT'

ALL_STEPS = [
    'trigger_export',
    'poll_export_status',
    'download_export',
    'check_and_rename_existing_project',
    'import_project_to_cloud',
    'archive_source_project',
    'delete_export_file',
]

EXISTING_PROJECT = {
    'id': 42,
    'name': 'earn-investment-automation',
    'path': 'earn-investment-automation',
    'path_with_namespace': 'hmcorp/earn-investment-automation',
}


def source_responses(archive_status=201):
    return [
        json_response(202, {'message': '202 Accepted'}),
        json_response(200, {'export_status': 'finished'}),
        FakeResponse(200, ARCHIVE),
        json_response(archive_status, {'id': 1, 'archived': True}),
    ]


def imported():
    return json_response(
        201,
        {
            'id': 99,
            'path_with_namespace': 'hmcorp/earn-investment-automation',
            'import_status': 'scheduled',
        },
    )


def build(transfer_config, sleep, source, destination):
    source_client, source_session = make_client(SOURCE_URL, 'source-token', source)
    destination_client, destination_session = make_client(
        DESTINATION_URL, 'cloud-token', destination
    )
    pipeline = MigrationPipeline(
        transfer_config, source_client, destination_client, sleep=sleep
    )
    return pipeline, source_session, destination_session


class TestMigrationPipeline:
    """Test the full export/import sequence."""

    @pytest.mark.asyncio
    async def test_successful_run(self, transfer_config, sleep, log_messages):
        pipeline, source, destination = build(
            transfer_config,
            sleep,
            source_responses(),
            [FakeResponse(404), imported()],
        )

        result = await pipeline.run()

        assert result.success is True
        assert result.state is TransferState.CLEANED
        assert result.steps_completed == ALL_STEPS
        assert result.failed_step is None
        assert not transfer_config.export_path.exists()

        assert [(c['method'], c['url']) for c in source.calls] == [
            ('POST', f'{SOURCE_API}/export'),
            ('GET', f'{SOURCE_API}/export'),
            ('GET', f'{SOURCE_API}/export/download'),
            ('POST', f'{SOURCE_API}/archive'),
        ]
        assert [(c['method'], c['url']) for c in destination.calls] == [
            ('GET', f'{DESTINATION_API}/hmcorp%2Fearn-investment-automation'),
            ('POST', f'{DESTINATION_API}/import'),
        ]

        expected_url = 'https://gitlab.com/hmcorp/earn-investment-automation'
        assert result.destination_url == expected_url
        assert f'Check the process here: {expected_url}' in log_messages[-1]

    @pytest.mark.asyncio
    async def test_download_follows_first_finished_status(
        self, transfer_config, sleep
    ):
        source = source_responses()
        source[1:2] = [
            json_response(200, {'export_status': 'queued'}),
            json_response(200, {'export_status': 'started'}),
            json_response(200, {'export_status': 'finished'}),
        ]
        pipeline, source_session, _ = build(
            transfer_config, sleep, source, [FakeResponse(404), imported()]
        )

        result = await pipeline.run()

        assert result.success is True
        urls = [c['url'] for c in source_session.calls]
        assert urls.count(f'{SOURCE_API}/export/download') == 1
        assert urls.index(f'{SOURCE_API}/export/download') == 4
        assert sleep.delays == [10.0, 10.0]

    @pytest.mark.asyncio
    async def test_existing_project_is_renamed(self, transfer_config, sleep):
        pipeline, _, destination = build(
            transfer_config,
            sleep,
            source_responses(),
            [json_response(200, EXISTING_PROJECT), json_response(200, {}), imported()],
        )

        result = await pipeline.run()

        assert result.success is True
        rename = destination.calls[1]
        assert rename['method'] == 'PUT'
        assert rename['url'] == f'{DESTINATION_API}/42'
        assert rename['json'] == {
            'name': 'earn-investment-automation-delete',
            'path': 'earn-investment-automation-delete',
        }
        assert result.renamed_project == 'earn-investment-automation-delete'
        assert destination.calls[2]['url'] == f'{DESTINATION_API}/import'

    @pytest.mark.asyncio
    async def test_import_proceeds_when_rename_fails(self, transfer_config, sleep):
        pipeline, _, destination = build(
            transfer_config,
            sleep,
            source_responses(),
            [
                json_response(200, EXISTING_PROJECT),
                json_response(400, {'message': 'path has already been taken'}),
                imported(),
            ],
        )

        result = await pipeline.run()

        assert result.success is True
        assert result.renamed_project is None
        assert len(result.warnings) == 1
        assert destination.calls[2]['url'] == f'{DESTINATION_API}/import'

    @pytest.mark.asyncio
    async def test_missing_project_is_not_renamed(self, transfer_config, sleep):
        pipeline, _, destination = build(
            transfer_config,
            sleep,
            source_responses(),
            [FakeResponse(404), imported()],
        )

        await pipeline.run()

        assert [c['method'] for c in destination.calls] == ['GET', 'POST']

    @pytest.mark.asyncio
    async def test_lookup_error_halts_before_import(self, transfer_config, sleep):
        pipeline, source, destination = build(
            transfer_config,
            sleep,
            source_responses(),
            [FakeResponse(500, b'Internal Server Error')],
        )

        result = await pipeline.run()

        assert result.state is TransferState.FAILED
        assert result.failed_step == 'check_and_rename_existing_project'
        assert len(destination.calls) == 1
        assert len(source.calls) == 3
        assert transfer_config.export_path.exists()

    @pytest.mark.asyncio
    async def test_trigger_rejected(self, transfer_config, sleep):
        pipeline, source, destination = build(
            transfer_config,
            sleep,
            [json_response(200, {'message': 'ok'})],
            [],
        )

        result = await pipeline.run()

        assert result.failed_step == 'trigger_export'
        assert result.steps_completed == []
        assert len(source.calls) == 1
        assert destination.calls == []

    @pytest.mark.asyncio
    async def test_trigger_network_error(self, transfer_config, sleep):
        pipeline, _, _ = build(
            transfer_config,
            sleep,
            [aiohttp.ClientConnectionError('refused')],
            [],
        )

        result = await pipeline.run()

        assert result.failed_step == 'trigger_export'
        assert 'Network error' in result.error_message

    @pytest.mark.asyncio
    async def test_poll_budget_exhausted(self, transfer_config, sleep):
        source = [json_response(202, {})] + [
            aiohttp.ClientConnectionError('reset')
        ] * 6
        pipeline, source_session, destination = build(
            transfer_config, sleep, source, []
        )

        result = await pipeline.run()

        assert result.failed_step == 'poll_export_status'
        assert result.steps_completed == ['trigger_export']
        assert len(source_session.calls) == 7
        assert destination.calls == []
        assert not transfer_config.export_path.exists()

    @pytest.mark.asyncio
    async def test_download_error_halts(self, transfer_config, sleep):
        source = source_responses()
        source[2] = FakeResponse(200, b'part', error=aiohttp.ClientPayloadError('cut'))
        pipeline, _, destination = build(transfer_config, sleep, source, [])

        result = await pipeline.run()

        assert result.failed_step == 'download_export'
        assert destination.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        'response',
        [
            json_response(200, {'message': 'accepted'}),
            json_response(400, {'message': 'Namespace is not valid'}),
        ],
    )
    async def test_import_not_created_skips_archive(
        self, transfer_config, sleep, response
    ):
        pipeline, source, _ = build(
            transfer_config,
            sleep,
            source_responses(),
            [FakeResponse(404), response],
        )

        result = await pipeline.run()

        assert result.failed_step == 'import_project_to_cloud'
        assert f'{SOURCE_API}/archive' not in [c['url'] for c in source.calls]
        assert transfer_config.export_path.read_bytes() == ARCHIVE

    @pytest.mark.asyncio
    async def test_archive_failure_keeps_file(self, transfer_config, sleep):
        pipeline, _, _ = build(
            transfer_config,
            sleep,
            source_responses(archive_status=200),
            [FakeResponse(404), imported()],
        )

        result = await pipeline.run()

        assert result.state is TransferState.FAILED
        assert result.failed_step == 'archive_source_project'
        assert 'import_project_to_cloud' in result.steps_completed
        assert result.destination_url is None
        assert transfer_config.export_path.exists()

    @pytest.mark.asyncio
    async def test_delete_missing_file_is_not_fatal(self, transfer_config, sleep):
        pipeline, _, _ = build(transfer_config, sleep, [], [])

        proceed = await pipeline.delete_export_file()

        assert proceed is True
        assert pipeline.result.state is not TransferState.FAILED
        assert pipeline.result.warnings

    @pytest.mark.asyncio
    async def test_rate_limited_trigger_halts(self, transfer_config, sleep):
        pipeline, _, destination = build(
            transfer_config,
            sleep,
            [FakeResponse(429, headers={'Retry-After': HTTP_DATE})],
            [],
        )

        result = await pipeline.run()

        assert result.state is TransferState.FAILED
        assert result.failed_step == 'trigger_export'
        assert 'Rate limit exceeded' in result.error_message
        assert destination.calls == []

    @pytest.mark.asyncio
    async def test_rate_limited_rename_still_imports(self, transfer_config, sleep):
        pipeline, _, destination = build(
            transfer_config,
            sleep,
            source_responses(),
            [
                json_response(200, EXISTING_PROJECT),
                FakeResponse(429, headers={'Retry-After': HTTP_DATE}),
                imported(),
            ],
        )

        result = await pipeline.run()

        assert result.success is True
        assert result.renamed_project is None
        assert 'Rate limit exceeded' in result.warnings[0]
        assert destination.calls[2]['url'] == f'{DESTINATION_API}/import'

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        'body', [{'id': 'not-a-number'}, ['unexpected'], None]
    )
    async def test_unreadable_import_response_is_not_fatal(
        self, transfer_config, sleep, body
    ):
        pipeline, source, _ = build(
            transfer_config,
            sleep,
            source_responses(),
            [FakeResponse(404), json_response(201, body)],
        )

        result = await pipeline.run()

        assert result.success is True
        assert 'import_project_to_cloud' in result.steps_completed
        assert source.calls[-1]['url'] == f'{SOURCE_API}/archive'
