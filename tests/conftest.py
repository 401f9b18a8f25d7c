from __future__ import annotations

import pytest

from studio_core import data as data_module


CLIENT_HEADER = "memberId,firstName,firstVisitDate,firstVisitEntityName,firstVisitLocation,homeLocation,trainerName,isNew,conversionStatus,retentionStatus,firstPurchase,ltv,conversionSpan,visitsPostTrial"

CLIENT_ROWS = [
    "c1,Asha,01/02/2024,Barre 57,Kwality House,Kwality House,Mrigakshi,New,Converted,Retained,11/02/2024,\"1,200\",10,4",
    "c2,Ben,05/02/2024 10:15:00,PowerCycle,Kenkere House,,Anisha,Returning,Converted,Not Retained,,300,0,0",
    "c3,Chen,13/03/2024,Barre 57,Kwality House,,Mrigakshi,new client,Not Converted,,,0,,2",
    "c4,Dina,not a date,Strength Lab,Supreme HQ,,Anisha,New,Converted,Retained,,500,30,1",
]

SESSION_HEADER = "memberId,memberName,locationName,membershipPackageName,type,startDate,endDate,sessionStart,membershipStatus,churnRiskAssessment,memberEngagementLevel,totalAmountPaid,attendedSessionsCount,totalSessionsBooked,pricePerSessionAttended,pricePerSessionBooked,projectedTotalSessions,pricePerProjectedSession,membershipUtilizationRate,attendanceRate,valueRealizationScore,daysUntilExpiry,cancellationReason"

SESSION_ROWS = [
    "m1,Asha,Kwality House,Studio 8 Pack,Class Pack,01/01/2024,31/01/2024,05/01/2024,Expired,High Risk,Low,4000,6,8,500,500,8,500,75,80,60,-5,Moved away",
    "m1,Asha,Kwality House,Studio 8 Pack,Class Pack,01/01/2024,31/01/2024,20/01/2024,Expired,High Risk,Low,4500,7,8,500,500,8,500,75,80,60,-5,Moved away",
    "m2,Ben,Kenkere House,Unlimited Month,Membership,15/01/2024,14/02/2024,16/01/2024,Active,Low Risk,High,9000,12,14,750,640,20,450,90%,85%,90,10,",
    "m3,Chen,Kwality House,Studio 8 Pack,Class Pack,02/02/2024,01/03/2024,03/02/2024,Cancelled,Medium Risk,Medium,3000,2,4,500,500,8,375,25,50,30,12,Price",
    "m4,Dina,Supreme HQ,,,,,,Active,,,1000,1,1,0,0,0,0,10,100,10,20,",
]

SALES_HEADER = "paymentDate,customerName,calculatedLocation,cleanedCategory,cleanedProduct,soldBy,paymentMethod,paymentValue,discountAmount,discountPercentage"

SALES_ROWS = [
    "03/01/2024 09:00:00,Asha,Kwality House,Memberships,Studio 8 Pack,Priya,Card,4000,1000,20",
    "10/01/2024,Ben,Kenkere House,Memberships,Unlimited Month,-,Online,9000,500,5",
    "12/02/2024,Chen,Kwality House,Retail,Grip Socks,Priya,Cash,800,0,0",
    "20/02/2024,Dina,Supreme HQ,Class Packs,Studio 4 Pack,Rahul,Card,2000,200,10",
]


def write_csv(path, header, rows):
    path.write_text("\n".join([header, *rows]) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    write_csv(tmp_path / "new_clients.csv", CLIENT_HEADER, CLIENT_ROWS)
    write_csv(tmp_path / "sessions.csv", SESSION_HEADER, SESSION_ROWS)
    write_csv(tmp_path / "sales.csv", SALES_HEADER, SALES_ROWS)
    monkeypatch.setattr(data_module, "DATA_DIR", tmp_path)
    data_module._load_dashboard_data_cached.cache_clear()
    yield tmp_path
    data_module._load_dashboard_data_cached.cache_clear()


@pytest.fixture
def data_ctx(data_dir):
    return data_module.load_dashboard_data()
